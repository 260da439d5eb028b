"""Tests for capture-bridge exception classes."""

import pytest

from capture_bridge.domain import ErrorKind
from capture_bridge.exceptions import (
    AbiQueryFailedError,
    AlignmentFailedError,
    ArtifactNotFoundError,
    CaptureBridgeError,
    ConfigurationError,
    DeviceError,
    DeviceUnreachableError,
    InjectionError,
    InstallTimeoutError,
    LayerInjectionFailedError,
    NotDebuggableError,
    PackageNotInstalledError,
    PermissionMissingError,
    PortConfigurationError,
    PullTimeoutError,
    SignatureRemovalFailedError,
    SigningFailedError,
    ToolMissingError,
    UninstallTimeoutError,
    UnsupportedAbiError,
)


class TestExceptionHierarchy:
    """Test exception inheritance hierarchy."""

    def test_base_exception(self):
        error = CaptureBridgeError("test error")
        assert isinstance(error, Exception)
        assert str(error) == "test error"
        assert error.diagnostic == "test error"

    @pytest.mark.parametrize(
        "error",
        [
            DeviceUnreachableError("abc"),
            PackageNotInstalledError("com.x"),
            AbiQueryFailedError("com.x"),
            UnsupportedAbiError("x86"),
        ],
    )
    def test_device_errors(self, error):
        assert isinstance(error, DeviceError)
        assert isinstance(error, CaptureBridgeError)

    @pytest.mark.parametrize(
        "error",
        [
            ToolMissingError(["aapt"]),
            ArtifactNotFoundError("lib.so", ["/a"]),
            PullTimeoutError("/data/app/base.apk", "/tmp/x.apk", 10),
            PermissionMissingError("com.x", ["android.permission.INTERNET"]),
            NotDebuggableError("com.x"),
            SignatureRemovalFailedError("x.apk"),
            LayerInjectionFailedError("x.apk"),
            AlignmentFailedError("x.apk", "timeout"),
            SigningFailedError("x.apk"),
            UninstallTimeoutError("com.x", 10),
            InstallTimeoutError("com.x", 10),
        ],
    )
    def test_injection_errors(self, error):
        assert isinstance(error, InjectionError)

    def test_port_configuration_error(self):
        error = PortConfigurationError("bad port")
        assert isinstance(error, ConfigurationError)
        assert error.kind is ErrorKind.CONFIGURATION


class TestErrorKinds:
    """Test that each exception carries its failure kind."""

    @pytest.mark.parametrize(
        "error,kind",
        [
            (ToolMissingError(["aapt"]), ErrorKind.TOOL_MISSING),
            (AbiQueryFailedError("com.x"), ErrorKind.ABI_QUERY_FAILED),
            (UnsupportedAbiError("x86"), ErrorKind.UNSUPPORTED_ABI),
            (ArtifactNotFoundError("lib.so", []), ErrorKind.ARTIFACT_NOT_FOUND),
            (PullTimeoutError("a", "b", 10), ErrorKind.PULL_TIMEOUT),
            (PermissionMissingError("com.x", []), ErrorKind.PERMISSION_MISSING),
            (NotDebuggableError("com.x"), ErrorKind.NOT_DEBUGGABLE),
            (SignatureRemovalFailedError("x.apk"), ErrorKind.SIGNATURE_REMOVAL_FAILED),
            (LayerInjectionFailedError("x.apk"), ErrorKind.LAYER_INJECTION_FAILED),
            (AlignmentFailedError("x.apk", "r"), ErrorKind.ALIGNMENT_FAILED),
            (SigningFailedError("x.apk"), ErrorKind.SIGNING_FAILED),
            (UninstallTimeoutError("com.x", 10), ErrorKind.UNINSTALL_TIMEOUT),
            (InstallTimeoutError("com.x", 10), ErrorKind.INSTALL_TIMEOUT),
            (DeviceUnreachableError("abc"), ErrorKind.DEVICE_UNREACHABLE),
            (PackageNotInstalledError("com.x"), ErrorKind.PACKAGE_NOT_INSTALLED),
        ],
    )
    def test_kind(self, error, kind):
        assert error.kind is kind


class TestDiagnostics:
    """Test diagnostic messages."""

    def test_tool_missing_lists_all(self):
        error = ToolMissingError(["zipalign", "java"])
        assert error.missing == ["zipalign", "java"]
        assert "zipalign, java" in str(error)

    def test_artifact_not_found_lists_search_order(self):
        error = ArtifactNotFoundError("lib.so", ["/first", "/second"])
        assert error.searched == ["/first", "/second"]
        assert str(error).index("/first") < str(error).index("/second")

    def test_device_unreachable_default_device(self):
        error = DeviceUnreachableError("", "adb not found")
        assert "default device" in str(error)
        assert "adb not found" in str(error)

    def test_pull_timeout(self):
        error = PullTimeoutError("/data/app/base.apk", "/tmp/x.apk", 10.0)
        assert "10s" in str(error)
        assert error.destination == "/tmp/x.apk"

    def test_signature_removal_remaining(self):
        error = SignatureRemovalFailedError("x.apk", ["META-INF/CERT.SF"])
        assert "META-INF/CERT.SF" in str(error)

    def test_layer_injection_without_stderr(self):
        assert "STDERR" not in str(LayerInjectionFailedError("x.apk"))
        assert "STDERR: boom" in str(LayerInjectionFailedError("x.apk", "boom"))

    def test_install_timeout_recovery_path(self):
        error = InstallTimeoutError("com.x", 10, "/work/com.x.orig.apk")
        assert error.recovery_apk == "/work/com.x.orig.apk"
        assert "/work/com.x.orig.apk" in str(error)

    def test_unsupported_empty_abi(self):
        assert "(empty)" in str(UnsupportedAbiError(""))
