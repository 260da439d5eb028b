"""Processor ABI classification.

Every known ABI is listed exactly once, either as supported (with the
artifact variant to install) or as explicitly unsupported. Lookups for an
unsupported or unrecognized ABI fail fast instead of picking a default.
"""

from __future__ import annotations

from enum import Enum

from capture_bridge.exceptions import UnsupportedAbiError


class Abi(Enum):
    """ABIs an Android device can report."""

    ARMEABI = "armeabi"
    ARMEABI_V7A = "armeabi-v7a"
    ARM64_V8A = "arm64-v8a"
    X86 = "x86"
    X86_64 = "x86_64"
    MIPS = "mips"
    MIPS64 = "mips64"
    UNKNOWN = "unknown"


class InstallVariant(Enum):
    """Installable artifact builds that ship with the host tool."""

    ARMEABI_V7A = "armeabi-v7a"


# 32-bit artifact works for both 32 and 64 bit ARM targets.
INSTALL_VARIANTS: dict[Abi, InstallVariant] = {
    Abi.ARMEABI_V7A: InstallVariant.ARMEABI_V7A,
    Abi.ARM64_V8A: InstallVariant.ARMEABI_V7A,
}

UNSUPPORTED_ABIS = frozenset(
    {Abi.ARMEABI, Abi.X86, Abi.X86_64, Abi.MIPS, Abi.MIPS64, Abi.UNKNOWN}
)

_BY_NAME = {abi.value: abi for abi in Abi if abi is not Abi.UNKNOWN}


def parse_abi(reported: str | None) -> Abi:
    return _BY_NAME.get((reported or "").strip(), Abi.UNKNOWN)


def is_supported(abi: Abi) -> bool:
    return abi in INSTALL_VARIANTS


def resolve_install_artifact(reported: str | None) -> InstallVariant:
    """Map a device-reported ABI to the artifact variant to install.

    Raises:
        UnsupportedAbiError: For x86, MIPS, plain armeabi and unknown ABIs
    """
    abi = parse_abi(reported)
    if abi in UNSUPPORTED_ABIS:
        raise UnsupportedAbiError((reported or "").strip())
    return INSTALL_VARIANTS[abi]


def resolve_layer_abi(reported: str | None) -> Abi:
    """Validate the ABI a package was installed with for layer injection.

    The layer library goes into ``lib/<abi>/`` of the package, so the app's
    own ABI is kept rather than collapsed to the install variant.

    Raises:
        UnsupportedAbiError: For ABIs without a capture layer build
    """
    abi = parse_abi(reported)
    if abi in UNSUPPORTED_ABIS:
        raise UnsupportedAbiError((reported or "").strip())
    return abi
