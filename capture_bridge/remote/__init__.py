"""Port addressing, host parsing and target discovery."""

from .host import is_adb_host, package_name, parse_host
from .ports import (
    ANDROID_PORT_OFFSET,
    DEFAULT_PORTS,
    FIRST_TARGET_CONTROL_PORT,
    LAST_TARGET_CONTROL_PORT,
    REMOTE_SERVER_PORT,
    PortAddressSpace,
    forwarded_port,
)
from .scanner import NO_TARGET, TargetScanner


__all__ = [
    "ANDROID_PORT_OFFSET",
    "DEFAULT_PORTS",
    "FIRST_TARGET_CONTROL_PORT",
    "LAST_TARGET_CONTROL_PORT",
    "NO_TARGET",
    "REMOTE_SERVER_PORT",
    "PortAddressSpace",
    "TargetScanner",
    "forwarded_port",
    "is_adb_host",
    "package_name",
    "parse_host",
]
