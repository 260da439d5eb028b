"""Entry points for UI and tooling callers.

Every function accepts an optional ``config`` and ``channel``. When they
are omitted the settings file is loaded and a real ``AdbChannel`` is
built, so callers that do not care about injection can stay one-liners:

    >>> from capture_bridge import api
    >>> ident = api.enumerate_remote_targets("adb:0:emulator-5554", 0)

Discovery and launch return plain values (0 means nothing found or timed
out). Injection returns a success flag; the failing stage and diagnostic
are logged.
"""

from __future__ import annotations

from typing import Callable

from capture_bridge.android.adb import (
    AdbChannel,
    DeviceChannel,
    forward_ports,
    friendly_name,
    list_devices,
)
from capture_bridge.android.injection import InjectionPipeline
from capture_bridge.android.injection import (
    check_capture_layer_present as _check_capture_layer_present,
)
from capture_bridge.android.launch import (
    start_package_for_capture as _start_package_for_capture,
)
from capture_bridge.android.launch import start_remote_server
from capture_bridge.config.settings import BridgeConfig, load_config
from capture_bridge.domain import Device, InjectionJob
from capture_bridge.exceptions import CaptureBridgeError
from capture_bridge.logging import get_logger
from capture_bridge.remote.host import package_name, parse_host
from capture_bridge.remote.scanner import TargetScanner

log = get_logger(source=__name__, tags=["api"])


def _resolve(
    config: BridgeConfig | None, channel: DeviceChannel | None
) -> tuple[BridgeConfig, DeviceChannel]:
    config = config or load_config()
    return config, channel or AdbChannel(config)


def enumerate_remote_targets(
    host: str | None,
    last_seen_ident: int,
    *,
    config: BridgeConfig | None = None,
    channel: DeviceChannel | None = None,
) -> int:
    """Next live target control port after ``last_seen_ident``, or 0."""
    config, channel = _resolve(config, channel)
    return TargetScanner(config, channel).enumerate(host, last_seen_ident)


def run_injection(
    host: str | None,
    package: str,
    progress: Callable[[float], None] | None = None,
    *,
    config: BridgeConfig | None = None,
    channel: DeviceChannel | None = None,
) -> InjectionJob:
    """Run the injection pipeline and return the finished job."""
    config, channel = _resolve(config, channel)
    return InjectionPipeline(config, channel).run(host, package, progress)


def add_capture_layer_to_package(
    host: str | None,
    package: str,
    progress: Callable[[float], None] | None = None,
    *,
    config: BridgeConfig | None = None,
    channel: DeviceChannel | None = None,
) -> bool:
    """Patch ``package`` on the device so it loads the capture layer.

    ``package`` may be given with a leading path; only its last component
    is used.
    """
    job = run_injection(host, package, progress, config=config, channel=channel)
    if not job.succeeded:
        log.error(f"Injection into {job.package} failed: {job.outcome.describe()}")
    return job.succeeded


def start_package_for_capture(
    host: str | None,
    package: str,
    *,
    config: BridgeConfig | None = None,
    channel: DeviceChannel | None = None,
) -> int:
    """Forwarded target control port of the launched package, or 0."""
    config, channel = _resolve(config, channel)
    try:
        return _start_package_for_capture(config, channel, host, package)
    except CaptureBridgeError as error:
        log.error(f"Could not launch {package} for capture: {error.diagnostic}")
        return 0


def check_capture_layer_present(
    host: str | None,
    package: str,
    *,
    config: BridgeConfig | None = None,
    channel: DeviceChannel | None = None,
) -> bool:
    config, channel = _resolve(config, channel)
    try:
        return _check_capture_layer_present(
            channel, parse_host(host).serial, package_name(package)
        )
    except CaptureBridgeError as error:
        log.error(f"Could not check {package} for the capture layer: {error.diagnostic}")
        return False


def enumerate_android_devices(
    *,
    config: BridgeConfig | None = None,
    channel: DeviceChannel | None = None,
) -> list[Device]:
    """List online devices with friendly labels and forward their ports."""
    config, channel = _resolve(config, channel)
    devices = []
    for device in list_devices(channel):
        if not config.ports.supports(device.ordinal):
            log.warning(
                f"Skipping {device.serial}: only {config.ports.max_devices} devices "
                "get their own ports"
            )
            continue
        label = friendly_name(channel, device.serial) or None
        forward_ports(channel, device.serial, device.ordinal, config.ports)
        devices.append(Device(serial=device.serial, ordinal=device.ordinal, label=label))
    log.debug(f"Found {len(devices)} Android device(s)")
    return devices


def device_hosts(
    *,
    config: BridgeConfig | None = None,
    channel: DeviceChannel | None = None,
) -> list[str]:
    """Host strings (``adb:<ordinal>:<serial>``) for every online device."""
    return [device.host for device in enumerate_android_devices(config=config, channel=channel)]


def get_friendly_name(
    host: str | None,
    *,
    config: BridgeConfig | None = None,
    channel: DeviceChannel | None = None,
) -> str:
    config, channel = _resolve(config, channel)
    return friendly_name(channel, parse_host(host).serial)


def start_android_remote_server(
    host: str | None,
    *,
    config: BridgeConfig | None = None,
    channel: DeviceChannel | None = None,
) -> bool:
    config, channel = _resolve(config, channel)
    try:
        start_remote_server(config, channel, host)
    except CaptureBridgeError as error:
        log.error(f"Could not start remote server: {error.diagnostic}")
        return False
    return True


def get_default_remote_server_port(*, config: BridgeConfig | None = None) -> int:
    return (config or load_config()).ports.remote_port
