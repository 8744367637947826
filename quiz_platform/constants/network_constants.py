"""Network configuration constants for the testing platform."""

DEFAULT_HOST: str = "0.0.0.0"
DEFAULT_PORT: int = 8000
SESSION_COOKIE: str = "quiz_session"
SESSION_HEADER: str = "X-Session-Token"
