"""Target discovery by probing the target control port range.

``TargetScanner.enumerate`` is a resumable cursor: call it with 0 to start,
then with each returned port to continue, until it returns 0.

Example:
    >>> scanner = TargetScanner(config, channel)
    >>> ident = scanner.enumerate("adb:0:emulator-5554", 0)
    >>> while ident:
    ...     print(ident)
    ...     ident = scanner.enumerate("adb:0:emulator-5554", ident)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from capture_bridge.domain import HostDescriptor, PortRange
from capture_bridge.logging import EventLogger, LoggerFactory
from capture_bridge.remote.host import parse_host

if TYPE_CHECKING:
    from capture_bridge.android.adb import DeviceChannel
    from capture_bridge.config.settings import BridgeConfig

log = LoggerFactory.for_scanner()

NO_TARGET = 0


class TargetScanner:
    """Finds live capture-control listeners one port at a time."""

    def __init__(self, config: BridgeConfig, channel: DeviceChannel):
        self.config = config
        self.channel = channel

    def scan_range(self, descriptor: HostDescriptor) -> PortRange:
        if descriptor.is_adb:
            return self.config.ports.target_range(descriptor.ordinal)
        return self.config.ports.local_range()

    def enumerate(self, host: str | None, last_seen_ident: int) -> int:
        """Return the next port after ``last_seen_ident`` with a live listener, or 0.

        Args:
            host: Network address, "adb:<ordinal>:<serial>", or empty for localhost
            last_seen_ident: 0 to start fresh, else the last port returned
        """
        descriptor = parse_host(host)
        port_range = self.scan_range(descriptor)
        start = port_range.first if last_seen_ident == 0 else last_seen_ident + 1
        start = max(start, port_range.first)

        for port in range(start, port_range.last + 1):
            if self.channel.probe(descriptor.address, port, self.config.probe_timeout):
                EventLogger.log_target_found(log, descriptor.address, port)
                return port
            log.trace(f"No listener on {descriptor.address}:{port}")

        log.debug(
            f"Tried all idents on {descriptor.address} from {start} to "
            f"{port_range.last}, none live"
        )
        return NO_TARGET

    def is_live(self, host: str | None, port: int) -> bool:
        """Single-shot liveness probe of one port."""
        descriptor = parse_host(host)
        return self.channel.probe(descriptor.address, port, self.config.probe_timeout)
