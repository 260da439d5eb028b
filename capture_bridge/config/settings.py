"""Settings storage and the explicit configuration value.

Settings are read from a JSON file once and turned into an immutable
``BridgeConfig`` that is passed to the scanner, channel and pipeline
constructors. Nothing here is consulted implicitly at call time.
"""

from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from capture_bridge.remote.ports import (
    ANDROID_PORT_OFFSET,
    FIRST_TARGET_CONTROL_PORT,
    LAST_TARGET_CONTROL_PORT,
    MAX_DEVICES,
    REMOTE_SERVER_PORT,
    PortAddressSpace,
)


SETTINGS_PATH = Path(
    os.environ.get(
        "CAPTURE_BRIDGE_SETTINGS_PATH",
        Path.home() / ".config" / "capture-bridge" / "settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_POLL_TIMEOUT = 10.0
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_PROBE_TIMEOUT = 0.25
MIN_CONNECT_TIMEOUT = 5
DEFAULT_DEBUG_KEYSTORE = "~/.android/debug.keystore"

DEFAULT_SETTINGS: dict[str, Any] = {
    "adb_exe_path": None,
    "max_connect_timeout": MIN_CONNECT_TIMEOUT,
    "layer_path": None,
    "server_apk_path": None,
    "install_dir": None,
    "work_root": None,
    "debug_keystore": DEFAULT_DEBUG_KEYSTORE,
    "poll_timeout": DEFAULT_POLL_TIMEOUT,
    "poll_interval": DEFAULT_POLL_INTERVAL,
    "probe_timeout": DEFAULT_PROBE_TIMEOUT,
    "keep_work_dir": False,
    "remote_server_port": REMOTE_SERVER_PORT,
    "first_target_control_port": FIRST_TARGET_CONTROL_PORT,
    "last_target_control_port": LAST_TARGET_CONTROL_PORT,
    "android_port_offset": ANDROID_PORT_OFFSET,
    "max_android_devices": MAX_DEVICES,
}


def _default_install_dir() -> Path:
    return Path(sys.argv[0] or ".").resolve().parent


def _optional_path(value: Any) -> Path | None:
    if value in (None, ""):
        return None
    return Path(str(value)).expanduser()


@dataclass(frozen=True)
class BridgeConfig:
    """Read-only configuration shared by every component."""

    adb_exe_path: str | None = None
    max_connect_timeout: int = MIN_CONNECT_TIMEOUT
    layer_path: str | None = None
    server_apk_path: str | None = None
    install_dir: Path = field(default_factory=_default_install_dir)
    work_root: Path | None = None
    debug_keystore: Path = field(
        default_factory=lambda: Path(DEFAULT_DEBUG_KEYSTORE).expanduser()
    )
    poll_timeout: float = DEFAULT_POLL_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    keep_work_dir: bool = False
    ports: PortAddressSpace = field(default_factory=PortAddressSpace)

    @property
    def connect_timeout(self) -> int:
        """Seconds to wait for a launched app, never below the floor."""
        return max(MIN_CONNECT_TIMEOUT, int(self.max_connect_timeout or 0))

    @classmethod
    def from_settings(cls, values: dict[str, Any]) -> BridgeConfig:
        merged = dict(DEFAULT_SETTINGS)
        merged.update(values)
        install_dir = _optional_path(merged["install_dir"]) or _default_install_dir()
        return cls(
            adb_exe_path=merged["adb_exe_path"] or None,
            max_connect_timeout=int(merged["max_connect_timeout"] or 0),
            layer_path=merged["layer_path"] or None,
            server_apk_path=merged["server_apk_path"] or None,
            install_dir=install_dir,
            work_root=_optional_path(merged["work_root"]),
            debug_keystore=_optional_path(merged["debug_keystore"])
            or Path(DEFAULT_DEBUG_KEYSTORE).expanduser(),
            poll_timeout=float(merged["poll_timeout"]),
            poll_interval=float(merged["poll_interval"]),
            probe_timeout=float(merged["probe_timeout"]),
            keep_work_dir=bool(merged["keep_work_dir"]),
            ports=PortAddressSpace(
                remote_port=int(merged["remote_server_port"]),
                first_control_port=int(merged["first_target_control_port"]),
                last_control_port=int(merged["last_target_control_port"]),
                offset_unit=int(merged["android_port_offset"]),
                max_devices=int(merged["max_android_devices"]),
            ),
        )


def load_settings(path: Path | None = None) -> dict[str, Any]:
    path = path or SETTINGS_PATH
    values = dict(DEFAULT_SETTINGS)
    if not path.exists():
        return values
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return values
    if isinstance(data, dict):
        values.update(data)
    return values


def save_settings(values: dict[str, Any], path: Path | None = None) -> None:
    path = path or SETTINGS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(values, indent=2, sort_keys=True),
        encoding="utf-8",
    )


def load_config(path: Path | None = None) -> BridgeConfig:
    return BridgeConfig.from_settings(load_settings(path))
