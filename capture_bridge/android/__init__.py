"""Android device access, APK patching and capture launch."""

from .abi import Abi, InstallVariant, resolve_install_artifact, resolve_layer_abi
from .adb import AdbChannel, CommandResult, DeviceChannel
from .injection import InjectionPipeline, check_capture_layer_present
from .launch import start_package_for_capture, start_remote_server
from .polling import PollResult, poll_until


__all__ = [
    "Abi",
    "AdbChannel",
    "CommandResult",
    "DeviceChannel",
    "InjectionPipeline",
    "InstallVariant",
    "PollResult",
    "check_capture_layer_present",
    "poll_until",
    "resolve_install_artifact",
    "resolve_layer_abi",
    "start_package_for_capture",
    "start_remote_server",
]
