"""Custom exceptions for discovery and injection operations.

Every exception carries an ``ErrorKind`` and a short diagnostic so a failed
job can be reported as "kind during stage: diagnostic" without re-running
with extra logging.

Exception Hierarchy:
    CaptureBridgeError (base)
        ├── ConfigurationError
        │   └── PortConfigurationError
        ├── DeviceError
        │   ├── DeviceUnreachableError
        │   ├── PackageNotInstalledError
        │   ├── AbiQueryFailedError
        │   └── UnsupportedAbiError
        └── InjectionError
            ├── ToolMissingError
            ├── ArtifactNotFoundError
            ├── PullTimeoutError
            ├── PermissionMissingError
            ├── NotDebuggableError
            ├── SignatureRemovalFailedError
            ├── LayerInjectionFailedError
            ├── AlignmentFailedError
            ├── SigningFailedError
            ├── UninstallTimeoutError
            └── InstallTimeoutError

Usage:
    from capture_bridge.exceptions import ToolMissingError

    if missing:
        raise ToolMissingError(missing)
"""

from __future__ import annotations

from typing import Iterable

from capture_bridge.domain import ErrorKind


class CaptureBridgeError(Exception):
    """Base exception for all capture-bridge operations."""

    kind = ErrorKind.DEVICE_UNREACHABLE

    def __init__(self, diagnostic: str):
        self.diagnostic = diagnostic
        super().__init__(diagnostic)


class ConfigurationError(CaptureBridgeError):
    """Invalid configuration; fatal, not retried."""

    kind = ErrorKind.CONFIGURATION


class PortConfigurationError(ConfigurationError):
    """Port arithmetic produced an invalid or colliding port."""


class DeviceError(CaptureBridgeError):
    """Base exception for device-side errors."""


class DeviceUnreachableError(DeviceError):
    """The device or the adb bridge could not be reached."""

    kind = ErrorKind.DEVICE_UNREACHABLE

    def __init__(self, serial: str, reason: str = ""):
        self.serial = serial
        self.reason = reason
        target = serial or "default device"
        msg = f"Device {target} is unreachable"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class PackageNotInstalledError(DeviceError):
    """Package could not be resolved by the device package manager."""

    kind = ErrorKind.PACKAGE_NOT_INSTALLED

    def __init__(self, package: str):
        self.package = package
        super().__init__(f"Package {package} is not installed on the device")


class AbiQueryFailedError(DeviceError):
    """Installed ABI could not be determined from package manager output."""

    kind = ErrorKind.ABI_QUERY_FAILED

    def __init__(self, package: str, reason: str = ""):
        self.package = package
        self.reason = reason
        msg = f"Unable to determine installed ABI for {package}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class UnsupportedAbiError(DeviceError):
    """Reported ABI has no installable capture artifact."""

    kind = ErrorKind.UNSUPPORTED_ABI

    def __init__(self, reported_abi: str):
        self.reported_abi = reported_abi
        super().__init__(f"Unsupported target ABI: {reported_abi or '(empty)'}")


class InjectionError(CaptureBridgeError):
    """Base exception for injection pipeline stage failures."""


class ToolMissingError(InjectionError):
    """One or more required host tools or credentials are missing."""

    kind = ErrorKind.TOOL_MISSING

    def __init__(self, missing: Iterable[str]):
        self.missing = list(missing)
        super().__init__(f"Missing required tools: {', '.join(self.missing)}")


class ArtifactNotFoundError(InjectionError):
    """Capture layer artifact was not found in any searched location."""

    kind = ErrorKind.ARTIFACT_NOT_FOUND

    def __init__(self, name: str, searched: Iterable[str]):
        self.name = name
        self.searched = list(searched)
        super().__init__(
            f"{name} missing! Searched: {', '.join(self.searched)}"
        )


class PullTimeoutError(InjectionError):
    """Pulled package did not appear on the host in time."""

    kind = ErrorKind.PULL_TIMEOUT

    def __init__(self, device_path: str, destination: str, timeout: float):
        self.device_path = device_path
        self.destination = destination
        self.timeout = timeout
        super().__init__(
            f"Failed to pull {device_path} to {destination} within {timeout:g}s"
        )


class PermissionMissingError(InjectionError):
    """Package manifest lacks permissions needed for capture."""

    kind = ErrorKind.PERMISSION_MISSING

    def __init__(self, package: str, permissions: Iterable[str]):
        self.package = package
        self.permissions = list(permissions)
        super().__init__(
            f"APK {package} missing permission(s): {', '.join(self.permissions)}"
        )


class NotDebuggableError(InjectionError):
    """Package is not marked debuggable."""

    kind = ErrorKind.NOT_DEBUGGABLE

    def __init__(self, package: str):
        self.package = package
        super().__init__(f"APK {package} is not debuggable")


class SignatureRemovalFailedError(InjectionError):
    """Signature entries survived removal."""

    kind = ErrorKind.SIGNATURE_REMOVAL_FAILED

    def __init__(self, apk: str, remaining: Iterable[str] = ()):
        self.apk = apk
        self.remaining = list(remaining)
        msg = f"Failed to remove signature from {apk}"
        if self.remaining:
            msg += f", entries remaining: {', '.join(self.remaining)}"
        super().__init__(msg)


class LayerInjectionFailedError(InjectionError):
    """Packaging tool did not add the capture layer."""

    kind = ErrorKind.LAYER_INJECTION_FAILED

    def __init__(self, apk: str, stderr: str = ""):
        self.apk = apk
        self.stderr = stderr
        msg = f"Failed to add layer to {apk}"
        if stderr:
            msg += f". STDERR: {stderr}"
        super().__init__(msg)


class AlignmentFailedError(InjectionError):
    """Alignment tool failed or produced no output in time."""

    kind = ErrorKind.ALIGNMENT_FAILED

    def __init__(self, apk: str, reason: str):
        self.apk = apk
        self.reason = reason
        super().__init__(f"Failed to realign {apk}: {reason}")


class SigningFailedError(InjectionError):
    """Signed package carries no signature entries."""

    kind = ErrorKind.SIGNING_FAILED

    def __init__(self, apk: str, stderr: str = ""):
        self.apk = apk
        self.stderr = stderr
        msg = f"Re-sign of {apk} failed"
        if stderr:
            msg += f": {stderr}"
        super().__init__(msg)


class UninstallTimeoutError(InjectionError):
    """Package remained installed after the uninstall request."""

    kind = ErrorKind.UNINSTALL_TIMEOUT

    def __init__(self, package: str, timeout: float):
        self.package = package
        self.timeout = timeout
        super().__init__(f"Uninstall of {package} did not finish within {timeout:g}s")


class InstallTimeoutError(InjectionError):
    """Patched package never became resolvable after install."""

    kind = ErrorKind.INSTALL_TIMEOUT

    def __init__(self, package: str, timeout: float, recovery_apk: str = ""):
        self.package = package
        self.timeout = timeout
        self.recovery_apk = recovery_apk
        msg = f"Reinstall of {package} did not finish within {timeout:g}s"
        if recovery_apk:
            msg += f"; original package preserved at {recovery_apk}"
        super().__init__(msg)
