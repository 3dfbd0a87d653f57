"""Backend mode selection."""

from enum import Enum


class BackendMode(str, Enum):
    """Where the vault's items physically live."""

    # Serialized as one document in a key-value store
    PERSISTED = "persisted"
    # Mirrors a real directory granted by the user
    DISK = "disk"
