# hyper2rhv/core/__init__.py
from .exceptions import (
    ConfigurationError,
    EnvironmentCheckError,
    Fatal,
    Hyper2RhvError,
    ProcessError,
    RemoteRejection,
)
from .uuids import resolve_disk_uuids, validate_uuid

__all__ = [
    "Hyper2RhvError",
    "Fatal",
    "EnvironmentCheckError",
    "ConfigurationError",
    "RemoteRejection",
    "ProcessError",
    "resolve_disk_uuids",
    "validate_uuid",
]
