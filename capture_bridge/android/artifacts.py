"""Host-side artifact lookup.

Artifacts (the capture layer library and the remote server APK) are looked
up in a fixed priority order: the configured custom path first, then the
conventional locations relative to the install directory. The first file
that exists wins. On failure the full search list is reported in the same
order.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from capture_bridge.android.abi import Abi
from capture_bridge.config.settings import BridgeConfig
from capture_bridge.exceptions import ArtifactNotFoundError
from capture_bridge.logging import get_logger

log = get_logger(source=__name__, tags=["artifacts"])

CAPTURE_LAYER_NAME = "libVkLayer_GLES_RenderDoc.so"
SERVER_APK_NAME = "RenderDocCmd.apk"

# (description, directory relative to install_dir)
LAYER_LOCATIONS = (
    ("Windows install", "android/libs/{abi}"),
    ("Linux install", "../share/capture-bridge/android/libs/{abi}"),
    ("Local build", "../../build-android/renderdoccmd/libs/{abi}"),
    ("macOS build", "../../../../../build-android/renderdoccmd/libs/{abi}"),
)

SERVER_APK_LOCATIONS = (
    ("Windows install", "android/apk"),
    ("Linux install", "../share/capture-bridge/android/apk"),
    ("Local build", "../../build-android/bin"),
    ("macOS build", "../../../../../build-android/bin"),
)


def custom_candidate(custom_path: str, install_dir: Path, name: str) -> Path:
    """Resolve a configured path; relative paths are taken from install_dir.

    The artifact name is appended unless the path already ends with it.
    """
    path = Path(custom_path).expanduser()
    if not path.is_absolute():
        path = install_dir / path
    if path.name != name:
        path = path / name
    return path


def candidate_paths(
    install_dir: Path,
    locations: Iterable[tuple[str, str]],
    name: str,
    custom_path: str | None = None,
    **fields: str,
) -> list[Path]:
    paths = []
    if custom_path:
        log.info(f"Custom {name} path: {custom_path}")
        paths.append(custom_candidate(custom_path, install_dir, name))
    for _description, relative in locations:
        paths.append(install_dir / relative.format(**fields) / name)
    return paths


def find_first(candidates: Iterable[Path]) -> Path | None:
    for path in candidates:
        log.debug(f"Checking for artifact in {path}")
        if path.is_file():
            log.info(f"Artifact found: {path}")
            return path
    return None


def layer_candidates(config: BridgeConfig, abi: Abi) -> list[Path]:
    return candidate_paths(
        config.install_dir,
        LAYER_LOCATIONS,
        CAPTURE_LAYER_NAME,
        config.layer_path,
        abi=abi.value,
    )


def server_apk_candidates(config: BridgeConfig) -> list[Path]:
    return candidate_paths(
        config.install_dir,
        SERVER_APK_LOCATIONS,
        SERVER_APK_NAME,
        config.server_apk_path,
    )


def _find_or_raise(name: str, candidates: list[Path]) -> Path:
    found = find_first(candidates)
    if found is None:
        log.error(
            f"{name} missing! Capture on Android will not work without it. "
            "Build the Android targets in build-android to have it found automatically."
        )
        raise ArtifactNotFoundError(name, [str(path) for path in candidates])
    return found


def find_capture_layer(config: BridgeConfig, abi: Abi) -> Path:
    """Locate the capture layer library built for ``abi``.

    Raises:
        ArtifactNotFoundError: If no candidate exists
    """
    return _find_or_raise(CAPTURE_LAYER_NAME, layer_candidates(config, abi))


def find_server_apk(config: BridgeConfig) -> Path:
    """Locate the remote server APK.

    Raises:
        ArtifactNotFoundError: If no candidate exists
    """
    return _find_or_raise(SERVER_APK_NAME, server_apk_candidates(config))
