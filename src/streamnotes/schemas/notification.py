"""User-visible notifications emitted by the vault."""

from enum import Enum

from pydantic import BaseModel


class NotificationLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Notification(BaseModel):
    """A message meant for the user (toast, CLI line, ...)."""

    level: NotificationLevel
    message: str
