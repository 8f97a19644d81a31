"""
CSS selectors for the NotebookLM chat UI.

When NotebookLM changes its markup, these are the first thing to check.
"""

CHAT_INPUT_SELECTORS = (
    "textarea.query-box-input",
    'textarea[aria-label="Enter a query"]',
)

RESPONSE_CONTAINER = ".to-user-container"
RESPONSE_TEXT = ".message-text-content"
THINKING_INDICATOR = "div.thinking-message"

ERROR_SELECTORS = (
    ".error-message",
    ".error-container",
    "[role='alert']",
    ".rate-limit-message",
    "[data-error]",
    ".notification-error",
    ".alert-error",
    ".toast-error",
)

# Matched case-insensitively against error text shown on the page.
RATE_LIMIT_KEYWORDS = (
    "rate limit",
    "limit exceeded",
    "quota exhausted",
    "daily limit",
    "limit reached",
    "too many requests",
    "quota",
    "query limit",
    "request limit",
)

# Hosts that mean the browser was bounced to a sign-in page.
LOGIN_HOSTS = ("accounts.google.com",)


def contains_rate_limit_phrase(text: str) -> bool:
    lowered = (text or "").lower()
    return any(keyword in lowered for keyword in RATE_LIMIT_KEYWORDS)
