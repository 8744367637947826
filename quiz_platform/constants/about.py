"""Static metadata describing the service."""

APP_NAME = "Quiz Platform"
APP_VERSION = "0.1.0"
APP_DESCRIPTION = (
    "Online testing platform: students take timed or untimed multiple-choice tests "
    "per subject, administrators curate faculties, subjects and question banks."
)
