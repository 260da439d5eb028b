"""
Pytest configuration and shared fixtures for capture-bridge tests.

This module provides a scripted device channel, a virtual clock and a
configuration rooted in a temporary directory. No test touches a real
device, a real adb binary or the network.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest

from capture_bridge.android.adb import CommandResult, DeviceChannel
from capture_bridge.android.apk import REQUIRED_TOOLS
from capture_bridge.android.artifacts import CAPTURE_LAYER_NAME
from capture_bridge.config.settings import BridgeConfig


# ==============================================================================
# Fake Channel
# ==============================================================================


Action = Callable[[Tuple[str, ...], Optional[Path]], object]


def _as_result(args: Tuple[str, ...], value: object) -> CommandResult:
    if isinstance(value, CommandResult):
        return value
    return CommandResult(args, 0, "" if value is None else str(value), "")


class FakeChannel(DeviceChannel):
    """
    Scripted DeviceChannel.

    Rules match on an argument prefix; the most recently added matching rule
    wins. Host command names are matched by basename, so ``/usr/bin/aapt``
    matches a rule registered for ``aapt``. Unmatched commands succeed with
    empty output.
    """

    def __init__(self, tools: Sequence[str] = REQUIRED_TOOLS, live_ports=()):
        self.tools = set(tools)
        self.live_ports = set(live_ports)
        self.calls: List[tuple] = []
        self.probes: List[Tuple[str, int, float]] = []
        self._device_rules: List[Tuple[Tuple[str, ...], Action]] = []
        self._host_rules: List[Tuple[Tuple[str, ...], Action]] = []

    # Scripting ---------------------------------------------------------------

    def on_device(self, *prefix: str, stdout: str = "", stderr: str = "", action=None):
        self._device_rules.append((prefix, action or self._static(stdout, stderr)))

    def on_host(self, *prefix: str, stdout: str = "", stderr: str = "", action=None):
        self._host_rules.append((prefix, action or self._static(stdout, stderr)))

    @staticmethod
    def _static(stdout: str, stderr: str) -> Action:
        def respond(args, _cwd):
            return CommandResult(args, 1 if stderr else 0, stdout, stderr)

        return respond

    # DeviceChannel -----------------------------------------------------------

    def run_on_device(self, serial, args):
        args = tuple(args)
        self.calls.append(("device", serial, args))
        return self._dispatch(self._device_rules, args, args, None)

    def run_on_host(self, args, cwd=None):
        args = tuple(args)
        self.calls.append(("host", cwd, args))
        normalized = (Path(args[0]).name,) + args[1:] if args else args
        return self._dispatch(self._host_rules, normalized, args, cwd)

    def which(self, tool):
        return f"/usr/bin/{tool}" if tool in self.tools else None

    def probe(self, address, port, timeout):
        self.probes.append((address, port, timeout))
        return port in self.live_ports or (address, port) in self.live_ports

    # Inspection --------------------------------------------------------------

    def device_commands(self) -> List[Tuple[str, ...]]:
        return [call[2] for call in self.calls if call[0] == "device"]

    def host_commands(self) -> List[Tuple[str, ...]]:
        return [(Path(call[2][0]).name,) + call[2][1:] for call in self.calls if call[0] == "host"]

    def ran(self, *prefix: str) -> bool:
        commands = self.device_commands() + self.host_commands()
        return any(command[: len(prefix)] == prefix for command in commands)

    @staticmethod
    def _dispatch(rules, match_args, args, cwd) -> CommandResult:
        for prefix, action in reversed(rules):
            if match_args[: len(prefix)] == prefix:
                return _as_result(args, action(args, cwd))
        return CommandResult(args, 0, "", "")


# ==============================================================================
# Scripted Android Device
# ==============================================================================


PACKAGE = "com.example.app"
DEVICE_APK_PATH = f"/data/app/{PACKAGE}-1/base.apk"
ORIGINAL_ENTRIES = [
    "AndroidManifest.xml",
    "classes.dex",
    "resources.arsc",
    "META-INF/MANIFEST.MF",
    "META-INF/CERT.SF",
    "META-INF/CERT.RSA",
]
GOOD_BADGING = (
    f"package: name='{PACKAGE}' versionCode='1' versionName='1.0'\n"
    "uses-permission: name='android.permission.WRITE_EXTERNAL_STORAGE'\n"
    "uses-permission: name='android.permission.INTERNET'\n"
    "application-label:'Example'\n"
    "application-debuggable\n"
)


class ScriptedDevice:
    """
    A device plus host toolchain that behaves like the real tools.

    Tracks which package is installed and the entry list of every APK file
    the tools touch. Individual behaviours can be broken by overriding rules
    on ``channel`` after construction.
    """

    def __init__(self, channel: FakeChannel, package: str = PACKAGE, abi: str = "arm64-v8a"):
        self.channel = channel
        self.package = package
        self.abi = abi
        self.installed = True
        self.entries: Dict[str, List[str]] = {}

        channel.on_device(
            "shell", "pm", "dump", package,
            stdout=f"Packages:\n  Package [{package}] (1a2b3c):\n    primaryCpuAbi={abi}\n",
        )
        channel.on_device("shell", "pm", "path", package, action=self._pm_path)
        channel.on_device("pull", action=self._pull)
        channel.on_device("uninstall", package, action=self._uninstall)
        channel.on_device("install", action=self._install)

        channel.on_host("aapt", "dump", "badging", stdout=GOOD_BADGING)
        channel.on_host("aapt", "list", action=self._list)
        channel.on_host("aapt", "remove", action=self._remove)
        channel.on_host("aapt", "add", action=self._add)
        channel.on_host("zipalign", action=self._align)
        channel.on_host("apksigner", "sign", action=self._sign)

    def _apk_entries(self, apk: str) -> List[str]:
        return self.entries.setdefault(apk, list(ORIGINAL_ENTRIES))

    def _pm_path(self, _args, _cwd):
        return f"package:/data/app/{self.package}-1/base.apk\n" if self.installed else ""

    def _pull(self, args, _cwd):
        Path(args[2]).write_bytes(b"original apk")
        return f"{args[1]}: 1 file pulled."

    def _uninstall(self, _args, _cwd):
        self.installed = False
        return "Success"

    def _install(self, _args, _cwd):
        self.installed = True
        return "Success"

    def _list(self, args, _cwd):
        return "\n".join(self._apk_entries(args[2])) + "\n"

    def _remove(self, args, _cwd):
        entries = self._apk_entries(args[2])
        if args[3] in entries:
            entries.remove(args[3])
        return ""

    def _add(self, args, _cwd):
        self._apk_entries(args[2]).append(args[3])
        return f" '{args[3]}'...\n"

    def _align(self, args, _cwd):
        source, aligned = args[3], args[4]
        Path(aligned).write_bytes(Path(source).read_bytes())
        self.entries[aligned] = list(self._apk_entries(source))
        return "Verification succesful"

    def _sign(self, args, _cwd):
        self._apk_entries(args[-1]).extend(
            ["META-INF/ANDROIDD.SF", "META-INF/ANDROIDD.RSA", "META-INF/MANIFEST.MF"]
        )
        return ""


# ==============================================================================
# Configuration Fixtures
# ==============================================================================


@pytest.fixture
def install_dir(tmp_path) -> Path:
    path = tmp_path / "install"
    path.mkdir()
    return path


@pytest.fixture
def config(tmp_path, install_dir) -> BridgeConfig:
    """BridgeConfig whose install dir, work root and keystore live in tmp_path."""
    keystore = tmp_path / "debug.keystore"
    keystore.write_bytes(b"keystore")
    return BridgeConfig(
        adb_exe_path="adb",
        install_dir=install_dir,
        work_root=tmp_path / "work",
        debug_keystore=keystore,
    )


@pytest.fixture
def layer_file(install_dir) -> Path:
    """Capture layer built for arm64-v8a in the Windows install location."""
    path = install_dir / "android" / "libs" / "arm64-v8a" / CAPTURE_LAYER_NAME
    path.parent.mkdir(parents=True)
    path.write_bytes(b"\x7fELF layer")
    return path


# ==============================================================================
# Channel Fixtures
# ==============================================================================


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def device(channel) -> ScriptedDevice:
    return ScriptedDevice(channel)


class SleepRecorder:
    """Virtual clock: records requested sleeps instead of sleeping."""

    def __init__(self):
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.calls)


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()
