from .base import BaseEhrAdapter
from .factory import create_adapter
from .types import (
    ConnectionResult,
    EhrKarte,
    EhrPatient,
    EhrProvider,
    PushResult,
    ResourceType,
    SyncDirection,
    SyncResult,
    SyncStatus,
)

__all__ = [
    "BaseEhrAdapter",
    "ConnectionResult",
    "EhrKarte",
    "EhrPatient",
    "EhrProvider",
    "PushResult",
    "ResourceType",
    "SyncDirection",
    "SyncResult",
    "SyncStatus",
    "create_adapter",
]
