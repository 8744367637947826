"""Quiz-related constants shared by the engine, the facade and the API."""

TIMED_QUESTION_CAP: int = 25
TIMED_LIMIT_SECONDS: int = 25 * 60
TICK_INTERVAL_SECONDS: float = 1.0
RESULTS_HISTORY_LIMIT: int = 50
ATTEMPTS_PER_USER: int = 5
ANSWERS_PER_QUESTION: int = 4
