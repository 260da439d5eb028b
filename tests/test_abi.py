"""Tests for ABI classification."""

import pytest

from capture_bridge.android.abi import (
    INSTALL_VARIANTS,
    UNSUPPORTED_ABIS,
    Abi,
    InstallVariant,
    is_supported,
    parse_abi,
    resolve_install_artifact,
    resolve_layer_abi,
)
from capture_bridge.domain import ErrorKind
from capture_bridge.exceptions import UnsupportedAbiError


class TestResolveInstallArtifact:
    """Test the device ABI to install variant table."""

    @pytest.mark.parametrize("reported", ["armeabi-v7a", "arm64-v8a", " arm64-v8a\n"])
    def test_arm_abis_install_32bit_variant(self, reported):
        assert resolve_install_artifact(reported) is InstallVariant.ARMEABI_V7A

    @pytest.mark.parametrize(
        "reported", ["armeabi", "x86", "x86_64", "mips", "mips64", "", "riscv64", None]
    )
    def test_other_abis_fail_fast(self, reported):
        with pytest.raises(UnsupportedAbiError) as exc_info:
            resolve_install_artifact(reported)
        assert exc_info.value.kind is ErrorKind.UNSUPPORTED_ABI

    def test_error_names_reported_abi(self):
        with pytest.raises(UnsupportedAbiError) as exc_info:
            resolve_install_artifact("x86_64")
        assert exc_info.value.reported_abi == "x86_64"
        assert "x86_64" in str(exc_info.value)


class TestResolveLayerAbi:
    """Test validation of the installed ABI for layer injection."""

    def test_keeps_application_abi(self):
        assert resolve_layer_abi("arm64-v8a") is Abi.ARM64_V8A
        assert resolve_layer_abi("armeabi-v7a") is Abi.ARMEABI_V7A

    def test_rejects_x86(self):
        with pytest.raises(UnsupportedAbiError):
            resolve_layer_abi("x86")


class TestAbiTable:
    """Test that every ABI is classified exactly once."""

    def test_every_abi_is_supported_or_unsupported(self):
        for abi in Abi:
            assert (abi in INSTALL_VARIANTS) != (abi in UNSUPPORTED_ABIS)

    def test_is_supported(self):
        assert is_supported(Abi.ARM64_V8A)
        assert not is_supported(Abi.X86)

    def test_parse_unknown_abi(self):
        assert parse_abi("sparc") is Abi.UNKNOWN
        assert parse_abi("unknown") is Abi.UNKNOWN
