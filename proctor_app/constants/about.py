"""Static metadata describing ProctorApp."""

APP_NAME = "ProctorApp"
APP_VERSION = "0.1"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "ProctorApp runs timed, proctored assessment sessions. Candidates answer "
    "multiple-choice, free-text and coding questions while the integrity monitor "
    "watches for fullscreen exits, tab switches and forbidden shortcuts."
)
