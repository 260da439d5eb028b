"""Domain models for device discovery and capture layer injection."""

from __future__ import annotations

from .models import (
    ADB_HOST_PREFIX,
    Device,
    ErrorKind,
    HostDescriptor,
    InjectionJob,
    JobState,
    PortRange,
    PortRole,
    Stage,
    StageOutcome,
)


__all__ = [
    "ADB_HOST_PREFIX",
    "Device",
    "ErrorKind",
    "HostDescriptor",
    "InjectionJob",
    "JobState",
    "PortRange",
    "PortRole",
    "Stage",
    "StageOutcome",
]
