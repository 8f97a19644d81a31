# notebook_bridge/core/config.py
import json
from pathlib import Path
from typing import List, Tuple, Union
from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator

def _env_file_candidates() -> Tuple[Union[str, Path], ...]:
    """Build a prioritized list of .env files for cross-platform support."""
    base_dir = Path(__file__).resolve().parent.parent
    project_root = base_dir.parent
    candidates: List[Union[str, Path]] = [
        base_dir / ".env",
        base_dir / ".env.local",
        project_root / ".env",
        project_root / ".env.local",
        ".env",
    ]

    # Preserve order while removing duplicates
    unique_candidates: List[Union[str, Path]] = []
    seen = set()
    for candidate in candidates:
        key = str(candidate)
        if key in seen:
            continue
        seen.add(key)
        unique_candidates.append(candidate)
    return tuple(unique_candidates)


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "NotebookLM Bridge"
    APP_ENV: str = "dev"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False

    # Server
    HOST: str = "127.0.0.1"
    PORT: int = 8015
    LOG_LEVEL: str = "info"

    # Static bearer token for tool callers. Empty disables the check (dev only).
    SERVICE_TOKEN: str = ""

    # Database (notebook library)
    DATABASE_URL: str = "sqlite+aiosqlite:///notebook_bridge.db"
    SQL_LOG_LEVEL: str = "WARNING"

    # Browser identity
    NOTEBOOK_URL: str = "https://notebooklm.google.com/"
    DATA_DIR: str = "~/.notebook-bridge"
    HEADLESS: bool = True
    BROWSER_CHANNEL: str = "chromium"
    PAGE_LOAD_TIMEOUT: float = 30.0

    # Credentials
    AUTH_STATE_MAX_AGE_HOURS: float = 24.0
    LOGIN_TIMEOUT: float = 600.0
    HOST_PROCESS_NAMES: List[str] = ["chrome", "chromium", "Google Chrome", "chrome.exe"]
    HOST_PROCESS_WAIT_TIMEOUT: float = 60.0
    HOST_PROCESS_POLL_INTERVAL: float = 2.0

    # Sessions
    MAX_SESSIONS: int = 10
    SESSION_IDLE_TIMEOUT: float = 900.0
    SESSION_SWEEP_INTERVAL: float = 60.0

    # Answer acquisition
    ANSWER_TIMEOUT: float = 120.0
    ANSWER_POLL_INTERVAL: float = 1.0
    REQUIRED_STABLE_POLLS: int = 3

    # Prompt enhancement and response wrapping
    PROMPT_ENHANCE_ENABLED: bool = False
    PROMPT_ENHANCE_MODE: str = "strict"
    WRAP_RESPONSES: bool = False
    WRAPPER_MODE: str = "strict"
    # en, it or auto (detect from the question or answer text)
    PROMPT_ENHANCE_LANGUAGE: str = "auto"
    WRAPPER_LANGUAGE: str = "auto"

    @field_validator("HOST_PROCESS_NAMES", mode="before")
    @classmethod
    def parse_process_names(cls, v):
        """Accept a comma-separated string as well as a JSON list."""
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("["):
                return json.loads(s)
            return [p.strip() for p in s.split(",") if p.strip()]
        return v

    @field_validator("PROMPT_ENHANCE_MODE", "WRAPPER_MODE")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        mode = (v or "").strip().lower()
        if mode not in {"strict", "balanced"}:
            raise ValueError("mode must be 'strict' or 'balanced'")
        return mode

    @field_validator("PROMPT_ENHANCE_LANGUAGE", "WRAPPER_LANGUAGE")
    @classmethod
    def validate_language(cls, v: str) -> str:
        language = (v or "").strip().lower()
        if language not in {"en", "it", "auto"}:
            raise ValueError("language must be 'en', 'it' or 'auto'")
        return language

    @field_validator("MAX_SESSIONS", "REQUIRED_STABLE_POLLS")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @model_validator(mode="after")
    def enforce_production_security(self):
        env = (self.APP_ENV or "").lower()
        if env in {"prod", "production", "staging"}:
            if not self.SERVICE_TOKEN:
                raise ValueError("SERVICE_TOKEN must be set for production/staging.")
        return self

    @property
    def data_path(self) -> Path:
        return Path(self.DATA_DIR).expanduser().resolve()

    @property
    def auth_state_path(self) -> Path:
        return self.data_path / "browser_state" / "state.json"

    @property
    def profile_path(self) -> Path:
        return self.data_path / "chrome_profile"

    model_config = {
        "env_file": _env_file_candidates(),
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
    }

settings = Settings()
__all__ = ["settings", "Settings"]
