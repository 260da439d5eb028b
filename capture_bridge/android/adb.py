"""Device channel: adb and host command execution plus TCP probing.

The pipeline and scanner only talk to devices and host tools through the
``DeviceChannel`` interface, so their ordering and failure handling can be
exercised with a fake that never touches a real device.

Device addressing:
    An empty serial addresses the default device (``adb <args>``); any other
    serial is passed as ``adb -s <serial> <args>``.

adb Resolution:
    1. ``adb_exe_path`` from the configuration
    2. ``<install_dir>/android/adb`` (``adb.exe`` on Windows) if it exists
    3. ``adb`` on PATH, with a one-time warning
"""

from __future__ import annotations

import os
import shutil
import socket
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from capture_bridge.config.settings import BridgeConfig
from capture_bridge.domain import Device
from capture_bridge.exceptions import DeviceUnreachableError
from capture_bridge.logging import EventLogger, LoggerFactory, get_logger
from capture_bridge.remote.ports import PortAddressSpace

log = get_logger(source=__name__, tags=["adb"])

PACKAGE_PREFIX = "package:"
PRIMARY_ABI_KEY = "primaryCpuAbi="


@dataclass(frozen=True)
class CommandResult:
    """Captured output of one command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class DeviceChannel(ABC):
    """Narrow collaborator interface used by the scanner and the pipeline."""

    @abstractmethod
    def run_on_device(self, serial: str, args: Sequence[str]) -> CommandResult:
        """Run ``adb [-s serial] <args>``."""

    @abstractmethod
    def run_on_host(self, args: Sequence[str], cwd: Path | None = None) -> CommandResult:
        """Run a host tool; a tool that cannot start yields a failed result."""

    @abstractmethod
    def which(self, tool: str) -> str | None:
        """Path of ``tool`` on the host, or None if it is not installed."""

    @abstractmethod
    def probe(self, address: str, port: int, timeout: float) -> bool:
        """True if a TCP connection to ``address:port`` succeeds within ``timeout``."""


def resolve_adb_path(config: BridgeConfig) -> tuple[str, bool]:
    """Return the adb executable and whether it fell back to PATH."""
    if config.adb_exe_path:
        return config.adb_exe_path, False
    exe_name = "adb.exe" if os.name == "nt" else "adb"
    bundled = config.install_dir / "android" / exe_name
    if bundled.exists():
        return str(bundled), False
    return "adb", True


class AdbChannel(DeviceChannel):
    """DeviceChannel backed by subprocess and plain sockets."""

    def __init__(self, config: BridgeConfig):
        self.config = config
        self._adb_path: str | None = None

    @property
    def adb_path(self) -> str:
        if self._adb_path is None:
            path, fell_back = resolve_adb_path(self.config)
            if fell_back:
                log.warning("adb_exe_path not set, attempting to call 'adb' in working env")
            self._adb_path = path
        return self._adb_path

    def run_on_device(self, serial: str, args: Sequence[str]) -> CommandResult:
        command = [self.adb_path]
        if serial:
            command.extend(["-s", serial])
        command.extend(args)
        try:
            return self._run(command)
        except OSError as error:
            raise DeviceUnreachableError(serial, f"cannot run {self.adb_path}: {error}") from error

    def run_on_host(self, args: Sequence[str], cwd: Path | None = None) -> CommandResult:
        try:
            return self._run(list(args), cwd=cwd)
        except OSError as error:
            log.debug(f"Command could not start: {' '.join(args)}: {error}")
            return CommandResult(tuple(args), 127, "", str(error))

    def which(self, tool: str) -> str | None:
        return shutil.which(tool)

    def probe(self, address: str, port: int, timeout: float) -> bool:
        try:
            with socket.create_connection((address, port), timeout=timeout):
                return True
        except OSError:
            return False

    def _run(self, command: list[str], cwd: Path | None = None) -> CommandResult:
        log.debug(f"Running command: {' '.join(command)}")
        result = subprocess.run(
            command,
            cwd=str(cwd) if cwd else None,
            text=True,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
        )
        if result.stdout:
            log.trace(f"stdout: {result.stdout.strip()}")
        if result.stderr:
            log.debug(f"stderr: {result.stderr.strip()}")
        log.debug(f"Command completed with return code {result.returncode}")
        return CommandResult(
            tuple(command), result.returncode, result.stdout or "", result.stderr or ""
        )


# ==============================================================================
# Device helpers
# ==============================================================================


def shell(channel: DeviceChannel, serial: str, *args: str) -> str:
    """Run ``adb shell`` and return trimmed stdout."""
    return channel.run_on_device(serial, ["shell", *args]).stdout.strip()


def get_prop(channel: DeviceChannel, serial: str, name: str) -> str:
    return shell(channel, serial, "getprop", name)


def set_prop(channel: DeviceChannel, serial: str, name: str, value: str) -> None:
    shell(channel, serial, "setprop", name, value)


def package_path(channel: DeviceChannel, serial: str, package: str) -> str:
    """Device path of the installed package, or "" if it is not installed."""
    output = shell(channel, serial, "pm", "path", package)
    for line in output.splitlines():
        line = line.strip()
        if line.startswith(PACKAGE_PREFIX):
            return line[len(PACKAGE_PREFIX):]
    return ""


def parse_primary_abi(dump: str) -> str:
    """Extract ``primaryCpuAbi=`` from ``pm dump`` output ("" if absent or null)."""
    for line in dump.splitlines():
        line = line.strip()
        if line.startswith(PRIMARY_ABI_KEY):
            abi = line.rsplit("=", 1)[-1].strip()
            return "" if abi == "null" else abi
    return ""


def is_package_installed(channel: DeviceChannel, serial: str, package: str) -> bool:
    return bool(package_path(channel, serial, package))


def forward_ports(
    channel: DeviceChannel, serial: str, ordinal: int, ports: PortAddressSpace
) -> None:
    """Forward the remote server and first target control port for one device."""
    adb_log = LoggerFactory.for_adb(serial)
    for host_port, device_port in ports.forwards(ordinal):
        channel.run_on_device(serial, ["forward", f"tcp:{host_port}", f"tcp:{device_port}"])
        EventLogger.log_port_forwarded(adb_log, serial, host_port, device_port)


def parse_device_list(output: str) -> list[Device]:
    """Parse ``adb devices`` output; only devices in the "device" state count."""
    devices = []
    for line in output.splitlines():
        tokens = line.split("\t")
        if len(tokens) == 2 and tokens[1].strip() == "device":
            devices.append(Device(serial=tokens[0].strip(), ordinal=len(devices)))
    return devices


def list_devices(channel: DeviceChannel) -> list[Device]:
    return parse_device_list(channel.run_on_device("", ["devices"]).stdout)


def format_friendly_name(manufacturer: str, model: str) -> str:
    manufacturer = manufacturer.strip()
    model = model.strip()
    if manufacturer and model:
        return f"{manufacturer} {model}"
    if model:
        return model
    if manufacturer:
        return f"{manufacturer} device"
    return ""


def friendly_name(channel: DeviceChannel, serial: str) -> str:
    return format_friendly_name(
        get_prop(channel, serial, "ro.product.manufacturer"),
        get_prop(channel, serial, "ro.product.model"),
    )
