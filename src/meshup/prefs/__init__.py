"""Daemon preference model."""
from .schema import (
    DEFAULT_CONTROL_URL,
    LOGIN_CONTROL_URL,
    MaskedPrefs,
    NetfilterMode,
    Persist,
    Prefs,
    check_tag,
    is_login_server_synonym,
)

__all__ = [
    "DEFAULT_CONTROL_URL",
    "LOGIN_CONTROL_URL",
    "MaskedPrefs",
    "NetfilterMode",
    "Persist",
    "Prefs",
    "check_tag",
    "is_login_server_synonym",
]
