"""APK inspection and editing through the Android SDK build tools.

Wraps ``aapt`` (list/remove/add/dump badging), ``zipalign`` and
``apksigner``. The tools are black boxes: their text output is
pattern-matched, nothing here parses the APK itself.
"""

from __future__ import annotations

from pathlib import Path

from capture_bridge.android.adb import CommandResult, DeviceChannel
from capture_bridge.config.settings import BridgeConfig
from capture_bridge.logging import get_logger

log = get_logger(source=__name__, tags=["apk"])

SIGNATURE_PREFIX = "META-INF"
DEBUGGABLE_MARKER = "application-debuggable"
REQUIRED_PERMISSIONS = (
    "android.permission.WRITE_EXTERNAL_STORAGE",
    "android.permission.INTERNET",
)
REQUIRED_TOOLS = ("aapt", "zipalign", "apksigner", "java")

DEBUG_KEY_ALIAS = "androiddebugkey"
DEBUG_KEY_PASSWORD = "android"
ZIP_ALIGNMENT = "4"


def signature_entries(entries: list[str]) -> list[str]:
    return [entry for entry in entries if entry.startswith(SIGNATURE_PREFIX)]


def missing_permissions(badging: str) -> list[str]:
    return [permission for permission in REQUIRED_PERMISSIONS if permission not in badging]


def is_debuggable(badging: str) -> bool:
    return DEBUGGABLE_MARKER in badging


class ApkTools:
    """Host build-tool invocations for one configuration."""

    def __init__(self, channel: DeviceChannel, config: BridgeConfig):
        self.channel = channel
        self.config = config

    def _tool(self, name: str) -> str:
        return self.channel.which(name) or name

    def missing_prerequisites(self) -> list[str]:
        """Every required tool or credential that cannot be found."""
        missing = [tool for tool in REQUIRED_TOOLS if not self.channel.which(tool)]
        if not self.config.debug_keystore.is_file():
            missing.append(str(self.config.debug_keystore))
        for item in missing:
            log.error(f"Missing {item}")
        return missing

    def list_entries(self, apk: Path) -> list[str]:
        output = self.channel.run_on_host([self._tool("aapt"), "list", str(apk)]).stdout
        return [line.strip() for line in output.splitlines() if line.strip()]

    def remove_entry(self, apk: Path, entry: str) -> CommandResult:
        log.debug(f"Removing {entry} from {apk.name}")
        return self.channel.run_on_host([self._tool("aapt"), "remove", str(apk), entry])

    def add_entry(self, apk: Path, entry: str, cwd: Path) -> CommandResult:
        return self.channel.run_on_host(
            [self._tool("aapt"), "add", str(apk), entry], cwd=cwd
        )

    def badging(self, apk: Path) -> str:
        return self.channel.run_on_host(
            [self._tool("aapt"), "dump", "badging", str(apk)]
        ).stdout

    def align(self, apk: Path, aligned: Path, cwd: Path) -> CommandResult:
        return self.channel.run_on_host(
            [self._tool("zipalign"), "-f", ZIP_ALIGNMENT, str(apk), str(aligned)],
            cwd=cwd,
        )

    def sign(self, apk: Path, cwd: Path) -> CommandResult:
        return self.channel.run_on_host(
            [
                self._tool("apksigner"),
                "sign",
                "--ks",
                str(self.config.debug_keystore),
                "--ks-pass",
                f"pass:{DEBUG_KEY_PASSWORD}",
                "--key-pass",
                f"pass:{DEBUG_KEY_PASSWORD}",
                "--ks-key-alias",
                DEBUG_KEY_ALIAS,
                str(apk),
            ],
            cwd=cwd,
        )
