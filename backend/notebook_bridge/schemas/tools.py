from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

SESSION_ID_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")


class AskQuestionArgs(ToolArgs):
    question: str = Field(..., min_length=1, max_length=20000, description="Question to ask the notebook")
    session_id: Optional[str] = Field(
        default=None,
        pattern=SESSION_ID_PATTERN,
        description="Reuse a conversation. Omit to start a new session.",
    )
    notebook_id: Optional[str] = Field(default=None, description="Library notebook to query")
    notebook_url: Optional[str] = Field(default=None, description="Notebook URL, overrides notebook_id")
    timeout: Optional[float] = Field(default=None, gt=0, le=900, description="Seconds to wait for a stable answer")
    poll_interval: Optional[float] = Field(default=None, gt=0, le=30)
    required_stable_polls: Optional[int] = Field(default=None, ge=1, le=20)


class SessionIdArgs(ToolArgs):
    session_id: str = Field(..., pattern=SESSION_ID_PATTERN)


class NoArgs(ToolArgs):
    pass


class WaitForBrowserCloseArgs(ToolArgs):
    timeout: Optional[float] = Field(default=None, gt=0, le=600)
    poll_interval: Optional[float] = Field(default=None, gt=0, le=60)


class AddNotebookArgs(ToolArgs):
    name: str = Field(..., min_length=1, max_length=200)
    url: str = Field(..., min_length=1, max_length=2000)
    description: Optional[str] = Field(default=None, max_length=5000)
    topics: List[str] = Field(default_factory=list)
    activate: bool = False


class NotebookIdArgs(ToolArgs):
    notebook_id: str = Field(..., min_length=1)


class UpdateNotebookArgs(ToolArgs):
    notebook_id: str = Field(..., min_length=1)
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    url: Optional[str] = Field(default=None, min_length=1, max_length=2000)
    description: Optional[str] = Field(default=None, max_length=5000)
    topics: Optional[List[str]] = None
