"""Domain model for device discovery and capture layer injection.

Type-safe value objects shared by the port arithmetic, the target scanner
and the injection pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator


# ==============================================================================
# Device Domain
# ==============================================================================


ADB_HOST_PREFIX = "adb:"


@dataclass(frozen=True)
class Device:
    """An Android device listed by ``adb devices``.

    The ordinal is only stable within one enumeration pass and must never be
    used as a durable identity.
    """

    serial: str  # e.g., "R58M12ABCDE" or "emulator-5554"
    ordinal: int  # 0-based enumeration index
    label: str | None = None  # e.g., "Samsung SM-G973F"

    @property
    def host(self) -> str:
        """Host string understood by the scanner and the API (adb:0:serial)."""
        return f"{ADB_HOST_PREFIX}{self.ordinal}:{self.serial}"

    def format_label(self) -> str:
        """Format a human-readable label for display.

        Returns: e.g., "R58M12ABCDE" or "Samsung SM-G973F (R58M12ABCDE)"
        """
        if self.label:
            return f"{self.label} ({self.serial})"
        return self.serial


@dataclass(frozen=True)
class HostDescriptor:
    """Where to reach a target, parsed from a host string.

    ``is_adb`` descriptors are reached through ports forwarded on the
    loopback interface and use offset addressing; everything else is a
    direct network address with no offset.
    """

    address: str
    is_adb: bool = False
    ordinal: int = 0
    serial: str = ""


# ==============================================================================
# Port Domain
# ==============================================================================


class PortRole(Enum):
    """Logical port roles that get forwarded per device."""

    REMOTE_CONTROL = "remote_control"
    FIRST_TARGET_CONTROL = "first_target_control"
    LAST_TARGET_CONTROL = "last_target_control"


@dataclass(frozen=True)
class PortRange:
    """Inclusive window of target control ports private to one device."""

    first: int
    last: int
    offset: int = 0

    @property
    def ports(self) -> Iterator[int]:
        return iter(range(self.first, self.last + 1))

    def __contains__(self, port: object) -> bool:
        return isinstance(port, int) and self.first <= port <= self.last

    def __len__(self) -> int:
        return self.last - self.first + 1

    def overlaps(self, other: PortRange) -> bool:
        return self.first <= other.last and other.first <= self.last


# ==============================================================================
# Injection Job Domain
# ==============================================================================


class Stage(Enum):
    """Ordered stages of the capture layer injection pipeline."""

    NOT_STARTED = "not started"
    CHECK_PREREQUISITES = "check prerequisites"
    RESOLVE_ABI = "resolve installed abi"
    LOCATE_LAYER = "locate capture layer"
    PULL_PACKAGE = "pull package"
    VERIFY_PACKAGE = "verify package"
    STRIP_SIGNATURE = "strip signature"
    INJECT_LAYER = "inject capture layer"
    REALIGN = "realign"
    DEBUG_SIGN = "debug sign"
    UNINSTALL_ORIGINAL = "uninstall original"
    INSTALL_PATCHED = "install patched package"


class JobState(Enum):
    """State of a long-running operation."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ErrorKind(Enum):
    """Failure kinds surfaced to callers.

    Callers tell "not found" apart from tool or device errors by kind,
    never by catching everything.
    """

    TOOL_MISSING = "ToolMissing"
    ABI_QUERY_FAILED = "AbiQueryFailed"
    UNSUPPORTED_ABI = "UnsupportedAbi"
    ARTIFACT_NOT_FOUND = "ArtifactNotFound"
    PULL_TIMEOUT = "PullTimeout"
    PERMISSION_MISSING = "PermissionMissing"
    NOT_DEBUGGABLE = "NotDebuggable"
    SIGNATURE_REMOVAL_FAILED = "SignatureRemovalFailed"
    LAYER_INJECTION_FAILED = "LayerInjectionFailed"
    ALIGNMENT_FAILED = "AlignmentFailed"
    SIGNING_FAILED = "SigningFailed"
    UNINSTALL_TIMEOUT = "UninstallTimeout"
    INSTALL_TIMEOUT = "InstallTimeout"
    DEVICE_UNREACHABLE = "DeviceUnreachable"
    PACKAGE_NOT_INSTALLED = "PackageNotInstalled"
    CONFIGURATION = "Configuration"


@dataclass(frozen=True)
class StageOutcome:
    """Success, or a failure tagged with the stage that produced it."""

    ok: bool
    stage: Stage | None = None
    kind: ErrorKind | None = None
    diagnostic: str = ""

    @classmethod
    def success(cls) -> StageOutcome:
        return cls(ok=True)

    @classmethod
    def failure(cls, stage: Stage, kind: ErrorKind, diagnostic: str) -> StageOutcome:
        return cls(ok=False, stage=stage, kind=kind, diagnostic=diagnostic)

    def describe(self) -> str:
        if self.ok:
            return "completed"
        stage_name = self.stage.value if self.stage else "unknown stage"
        kind_name = self.kind.value if self.kind else "Error"
        return f"{kind_name} during {stage_name}: {self.diagnostic}"


@dataclass
class InjectionJob:
    """A request to inject the capture layer into one installed package.

    Mutated only by the pipeline that owns it.
    """

    job_id: str
    package: str
    device_serial: str
    abi: str | None = None
    work_dir: Path | None = None
    layer_path: Path | None = None
    original_package: Path | None = None  # pulled copy, never modified
    patched_package: Path | None = None
    aligned_package: Path | None = None
    stage: Stage = Stage.NOT_STARTED
    progress: float = 0.0
    state: JobState = JobState.PENDING
    outcome: StageOutcome | None = None
    uninstalled: bool = False
    history: list[Stage] = field(default_factory=list)

    def advance(self, stage: Stage, fraction: float) -> None:
        """Enter a stage and move progress forward.

        Raises:
            ValueError: If fraction would move progress backwards or out of range
        """
        if not 0.0 <= fraction <= 1.0:
            raise ValueError(f"Progress fraction out of range: {fraction}")
        if fraction < self.progress:
            raise ValueError(
                f"Progress cannot decrease ({self.progress:.2f} -> {fraction:.2f})"
            )
        self.stage = stage
        self.progress = fraction
        self.state = JobState.RUNNING
        self.history.append(stage)

    def complete(self) -> None:
        self.progress = 1.0
        self.state = JobState.COMPLETED
        self.outcome = StageOutcome.success()

    def fail(self, kind: ErrorKind, diagnostic: str) -> None:
        self.state = JobState.FAILED
        self.outcome = StageOutcome.failure(self.stage, kind, diagnostic)

    @property
    def is_finished(self) -> bool:
        return self.state in (JobState.COMPLETED, JobState.FAILED)

    @property
    def succeeded(self) -> bool:
        return self.state == JobState.COMPLETED
