"""Per-device port address space.

Every Android device exposes the same fixed ports internally. To reach
several devices at once each one gets its own window on the host, offset by
``offset_unit * (ordinal + 1)``. Local targets use the unshifted ports, so
ordinal 0 never collides with the host's own loopback range.

Device Limit:
    Shifted windows eventually run into the forwarded remote server ports
    (with the defaults, device 20's first target port is device 0's remote
    port). An address space only guarantees unique ports for ordinals below
    ``max_devices`` and refuses to build if those already collide.

Example:
    >>> from capture_bridge.remote.ports import DEFAULT_PORTS
    >>> DEFAULT_PORTS.target_range(1)
    PortRange(first=39020, last=39027, offset=100)
"""

from __future__ import annotations

from dataclasses import dataclass

from capture_bridge.domain import PortRange, PortRole
from capture_bridge.exceptions import PortConfigurationError

REMOTE_SERVER_PORT = 39920
FIRST_TARGET_CONTROL_PORT = 38920
LAST_TARGET_CONTROL_PORT = FIRST_TARGET_CONTROL_PORT + 7
ANDROID_PORT_OFFSET = 50
MAX_DEVICES = 16

MAX_PORT = 65535


def forwarded_port(
    base_remote_port: int,
    base_first_control_port: int,
    base_last_control_port: int,
    offset_unit: int,
    device_ordinal: int,
    role: PortRole,
) -> int:
    """Compute the host-side port for one role of one enumerated device.

    Raises:
        PortConfigurationError: If the ordinal is negative or the port
            falls outside the valid TCP range
    """
    if device_ordinal < 0:
        raise PortConfigurationError(f"Device ordinal must be >= 0, got {device_ordinal}")
    bases = {
        PortRole.REMOTE_CONTROL: base_remote_port,
        PortRole.FIRST_TARGET_CONTROL: base_first_control_port,
        PortRole.LAST_TARGET_CONTROL: base_last_control_port,
    }
    port = bases[role] + offset_unit * (device_ordinal + 1)
    if not 0 < port <= MAX_PORT:
        raise PortConfigurationError(
            f"Forwarded {role.value} port {port} for device {device_ordinal} "
            f"is outside 1-{MAX_PORT}"
        )
    return port


@dataclass(frozen=True)
class PortAddressSpace:
    """Base ports and the per-device offset unit."""

    remote_port: int = REMOTE_SERVER_PORT
    first_control_port: int = FIRST_TARGET_CONTROL_PORT
    last_control_port: int = LAST_TARGET_CONTROL_PORT
    offset_unit: int = ANDROID_PORT_OFFSET
    max_devices: int = MAX_DEVICES

    def __post_init__(self):
        if self.max_devices < 1:
            raise PortConfigurationError(f"max_devices must be >= 1, got {self.max_devices}")
        if self.last_control_port < self.first_control_port:
            raise PortConfigurationError(
                f"Last control port {self.last_control_port} is below "
                f"first control port {self.first_control_port}"
            )
        # Windows of neighbouring devices must not touch.
        if self.offset_unit <= self.last_control_port - self.first_control_port:
            raise PortConfigurationError(
                f"Offset unit {self.offset_unit} is not wider than the control "
                f"port window {self.first_control_port}-{self.last_control_port}"
            )
        self._check_unique_ports()

    def _check_unique_ports(self) -> None:
        """Local ports and every device's forwarded ports must all differ."""
        owners: dict[int, str] = {}

        def claim(ports, owner: str) -> None:
            for port in ports:
                if port in owners:
                    raise PortConfigurationError(
                        f"Port {port} of {owner} collides with {owners[port]}"
                    )
                owners[port] = owner

        claim([self.remote_port], "the local remote server")
        claim(self.local_range().ports, "the local target window")
        for ordinal in range(self.max_devices):
            owner = f"device {ordinal}"
            claim([self.port_for(ordinal, PortRole.REMOTE_CONTROL)], owner)
            claim(self.target_range(ordinal).ports, owner)

    def supports(self, device_ordinal: int) -> bool:
        return 0 <= device_ordinal < self.max_devices

    def port_for(self, device_ordinal: int, role: PortRole) -> int:
        return forwarded_port(
            self.remote_port,
            self.first_control_port,
            self.last_control_port,
            self.offset_unit,
            device_ordinal,
            role,
        )

    def device_offset(self, device_ordinal: int) -> int:
        return self.port_for(device_ordinal, PortRole.FIRST_TARGET_CONTROL) - (
            self.first_control_port
        )

    def target_range(self, device_ordinal: int) -> PortRange:
        """Scan range for an enumerated (adb) device."""
        return PortRange(
            first=self.port_for(device_ordinal, PortRole.FIRST_TARGET_CONTROL),
            last=self.port_for(device_ordinal, PortRole.LAST_TARGET_CONTROL),
            offset=self.device_offset(device_ordinal),
        )

    def local_range(self) -> PortRange:
        """Scan range for a directly addressed host, no offset."""
        return PortRange(first=self.first_control_port, last=self.last_control_port)

    def forwards(self, device_ordinal: int) -> list[tuple[int, int]]:
        """(host port, device port) pairs to forward for one device."""
        return [
            (self.port_for(device_ordinal, PortRole.REMOTE_CONTROL), self.remote_port),
            (
                self.port_for(device_ordinal, PortRole.FIRST_TARGET_CONTROL),
                self.first_control_port,
            ),
        ]


DEFAULT_PORTS = PortAddressSpace()
