"""Host string parsing.

Hosts are either plain network addresses ("localhost", "192.168.1.20") or
adb device references of the form ``adb:<ordinal>:<serial>``.
"""

from __future__ import annotations

from capture_bridge.domain import ADB_HOST_PREFIX, HostDescriptor

DEFAULT_HOST = "localhost"
LOOPBACK_ADDRESS = "127.0.0.1"


def is_adb_host(host: str | None) -> bool:
    return bool(host) and host.startswith(ADB_HOST_PREFIX)


def parse_host(host: str | None) -> HostDescriptor:
    """Parse a host string into a descriptor.

    A malformed adb reference without a serial falls back to ordinal 0 and
    the default device.
    """
    if not host:
        return HostDescriptor(address=DEFAULT_HOST)
    if not is_adb_host(host):
        return HostDescriptor(address=host)

    remainder = host[len(ADB_HOST_PREFIX):]
    ordinal_text, sep, serial = remainder.partition(":")
    if not sep:
        return HostDescriptor(address=LOOPBACK_ADDRESS, is_adb=True)
    try:
        ordinal = int(ordinal_text)
    except ValueError:
        ordinal = 0
    return HostDescriptor(
        address=LOOPBACK_ADDRESS,
        is_adb=True,
        ordinal=max(ordinal, 0),
        serial=serial,
    )


def package_name(package_or_path: str) -> str:
    """Strip any leading path from a package reference ("/com.foo" -> "com.foo")."""
    return package_or_path.rstrip("/").rsplit("/", 1)[-1]
