"""Launching packages and the remote server on a device.

Launch for capture:
    1. force-stop the package
    2. forward the remote server and first target control ports
    3. point the Vulkan loader at the capture layer (debug.vulkan.layers)
    4. grant external storage access for capture files and thumbnails
    5. launch through the LAUNCHER intent
    6. probe the forwarded target control port until it answers
    7. clear the loader property again, whatever the outcome

Remote server:
    The server package is installed from the host artifact when the device
    does not have it yet, then restarted with the remote server activity.
"""

from __future__ import annotations

import time
from typing import Callable

from capture_bridge.android.abi import resolve_install_artifact
from capture_bridge.android.adb import DeviceChannel, forward_ports, get_prop, set_prop, shell
from capture_bridge.android.artifacts import find_server_apk
from capture_bridge.android.polling import poll_until
from capture_bridge.config.settings import BridgeConfig
from capture_bridge.domain import PortRole
from capture_bridge.exceptions import PackageNotInstalledError
from capture_bridge.logging import LoggerFactory, get_logger, operation_context
from capture_bridge.remote.host import LOOPBACK_ADDRESS, package_name, parse_host

log = get_logger(source=__name__, tags=["launch"])

LAYERS_PROPERTY = "debug.vulkan.layers"
CAPTURE_LAYER_ID = "VK_LAYER_RENDERDOC_Capture"
CLEAR_LAYERS = ":"

CAPTURE_PERMISSIONS = (
    "android.permission.WRITE_EXTERNAL_STORAGE",  # writing the capture file
    "android.permission.READ_EXTERNAL_STORAGE",  # reading the capture thumbnail
)
LAUNCHER_CATEGORY = "android.intent.category.LAUNCHER"

SERVER_PACKAGE = "org.renderdoc.renderdoccmd"
SERVER_ACTIVITY = f"{SERVER_PACKAGE}/.Loader"
CPU_ABI_PROPERTY = "ro.product.cpu.abi"


def force_stop(channel: DeviceChannel, serial: str, package: str) -> None:
    shell(channel, serial, "am", "force-stop", package)


def start_package_for_capture(
    config: BridgeConfig,
    channel: DeviceChannel,
    host: str | None,
    package: str,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Launch ``package`` with the capture layer enabled.

    Returns:
        The forwarded target control port once the app answers on it, or 0
        if it never did within the connect timeout.
    """
    descriptor = parse_host(host)
    serial = descriptor.serial
    package = package_name(package)
    port = config.ports.port_for(descriptor.ordinal, PortRole.FIRST_TARGET_CONTROL)

    with operation_context("launch", package=package, device=serial or "default") as op_log:
        force_stop(channel, serial, package)
        forward_ports(channel, serial, descriptor.ordinal, config.ports)
        set_prop(channel, serial, LAYERS_PROPERTY, CAPTURE_LAYER_ID)
        try:
            for permission in CAPTURE_PERMISSIONS:
                shell(channel, serial, "pm", "grant", package, permission)
            shell(channel, serial, "monkey", "-p", package, "-c", LAUNCHER_CATEGORY, "1")

            ready = poll_until(
                lambda: channel.probe(LOOPBACK_ADDRESS, port, config.probe_timeout),
                interval=config.poll_interval,
                timeout=config.connect_timeout,
                sleep=sleep,
                description=f"{package} target control on port {port}",
            )
        finally:
            # Replay must not load the capture layer.
            set_prop(channel, serial, LAYERS_PROPERTY, CLEAR_LAYERS)

        if not ready:
            op_log.warning(
                f"{package} did not open port {port} within {config.connect_timeout}s"
            )
            return 0
        op_log.info(f"{package} is listening on port {port}")
        return port


def is_server_installed(channel: DeviceChannel, serial: str) -> bool:
    return bool(shell(channel, serial, "pm", "list", "packages", SERVER_PACKAGE))


def install_remote_server(config: BridgeConfig, channel: DeviceChannel, serial: str) -> None:
    """Install the remote server package matching the device ABI.

    Raises:
        ArtifactNotFoundError: If the server APK is not found on the host
        UnsupportedAbiError: If the device ABI has no server build
        PackageNotInstalledError: If the package is still missing afterwards
    """
    server_apk = find_server_apk(config)
    device_abi = get_prop(channel, serial, CPU_ABI_PROPERTY)
    variant = resolve_install_artifact(device_abi)

    adb_log = LoggerFactory.for_adb(serial)
    adb_log.info(f"Installing {server_apk.name} ({variant.value}) for device ABI {device_abi}")
    channel.run_on_device(serial, ["install", "-r", "--abi", variant.value, str(server_apk)])

    if not is_server_installed(channel, serial):
        adb_log.error(f"Installation of {server_apk.name} failed!")
        raise PackageNotInstalledError(SERVER_PACKAGE)


def start_remote_server(config: BridgeConfig, channel: DeviceChannel, host: str | None) -> None:
    """Install the remote server if needed and (re)start it.

    Raises:
        CaptureBridgeError: If the server could not be installed
    """
    descriptor = parse_host(host)
    serial = descriptor.serial

    if not is_server_installed(channel, serial):
        install_remote_server(config, channel, serial)

    force_stop(channel, serial, SERVER_PACKAGE)
    forward_ports(channel, serial, descriptor.ordinal, config.ports)
    set_prop(channel, serial, LAYERS_PROPERTY, CLEAR_LAYERS)
    shell(
        channel, serial,
        "am", "start", "-n", SERVER_ACTIVITY, "-e", "renderdoccmd", "remoteserver",
    )
    log.info(f"Remote server started on {serial or 'default device'}")
