"""Capture layer injection into an installed Android package.

The pipeline is a fixed, ordered list of stages run synchronously. Each
stage either returns (the job advances) or raises a ``CaptureBridgeError``
(the job fails and no later stage runs). Nothing is retried and nothing is
undone; the only waiting happens inside a stage's own bounded poll.

Stages:
    1. check prerequisites      aapt, zipalign, apksigner, java, debug keystore
    2. resolve installed abi    pm dump -> primaryCpuAbi
    3. locate capture layer     custom path, then install-relative locations
    4. pull package             pm path + adb pull, poll for the file
    5. verify package           permissions and debuggable flag
    6. strip signature          remove META-INF entries, confirm none remain
    7. inject capture layer     aapt add lib/<abi>/<layer>
    8. realign                  zipalign, poll for the aligned file
    9. debug sign               apksigner with the debug keystore
   10. uninstall original       adb uninstall, poll until gone
   11. install patched package  adb install --abi, poll until present

Progress is ``index / 11`` when a stage starts and 1.0 once all stages
succeed, so an observer sees forward motion during long stages.

Once stage 10 has run the device no longer has the package. A failure in
stage 11 leaves it uninstalled; the pulled original is kept in the job's
work directory and its path is logged for manual reinstall.
"""

from __future__ import annotations

import shutil
import tempfile
import time
from pathlib import Path
from typing import Callable

from capture_bridge.android.abi import parse_abi, resolve_layer_abi
from capture_bridge.android.adb import (
    DeviceChannel,
    is_package_installed,
    package_path,
    parse_primary_abi,
    shell,
)
from capture_bridge.android.apk import (
    ApkTools,
    is_debuggable,
    missing_permissions,
    signature_entries,
)
from capture_bridge.android.artifacts import CAPTURE_LAYER_NAME, find_capture_layer
from capture_bridge.android.polling import poll_until
from capture_bridge.config.settings import BridgeConfig
from capture_bridge.domain import InjectionJob, Stage
from capture_bridge.exceptions import (
    AbiQueryFailedError,
    AlignmentFailedError,
    CaptureBridgeError,
    ConfigurationError,
    InstallTimeoutError,
    LayerInjectionFailedError,
    NotDebuggableError,
    PackageNotInstalledError,
    PermissionMissingError,
    PullTimeoutError,
    SignatureRemovalFailedError,
    SigningFailedError,
    ToolMissingError,
    UninstallTimeoutError,
)
from capture_bridge.logging import EventLogger, get_logger, new_job_id, operation_context
from capture_bridge.remote.host import package_name, parse_host

log = get_logger(source=__name__, tags=["inject"])

ProgressCallback = Callable[[float], None]

DEBUG_LAYER_LOCATION = "/data/local/debug/vulkan"


class InjectionPipeline:
    """Drives one injection job at a time through the ordered stages."""

    def __init__(
        self,
        config: BridgeConfig,
        channel: DeviceChannel,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.channel = channel
        self.sleep = sleep
        self.apk = ApkTools(channel, config)
        self.stages: tuple[tuple[Stage, Callable[[InjectionJob], None]], ...] = (
            (Stage.CHECK_PREREQUISITES, self.check_prerequisites),
            (Stage.RESOLVE_ABI, self.resolve_abi),
            (Stage.LOCATE_LAYER, self.locate_layer),
            (Stage.PULL_PACKAGE, self.pull_package),
            (Stage.VERIFY_PACKAGE, self.verify_package),
            (Stage.STRIP_SIGNATURE, self.strip_signature),
            (Stage.INJECT_LAYER, self.inject_layer),
            (Stage.REALIGN, self.realign),
            (Stage.DEBUG_SIGN, self.debug_sign),
            (Stage.UNINSTALL_ORIGINAL, self.uninstall_original),
            (Stage.INSTALL_PATCHED, self.install_patched),
        )

    def create_job(self, host: str | None, package: str) -> InjectionJob:
        descriptor = parse_host(host)
        return InjectionJob(
            job_id=new_job_id("inject"),
            package=package_name(package),
            device_serial=descriptor.serial,
        )

    def run(
        self,
        host: str | None,
        package: str,
        progress_callback: ProgressCallback | None = None,
    ) -> InjectionJob:
        """Run every stage for ``package`` on the device named by ``host``.

        Returns the finished job; stage failures are recorded in
        ``job.outcome`` rather than raised.
        """
        job = self.create_job(host, package)
        return self.execute(job, progress_callback)

    def execute(
        self, job: InjectionJob, progress_callback: ProgressCallback | None = None
    ) -> InjectionJob:
        total = len(self.stages)
        if progress_callback:
            progress_callback(job.progress)
        try:
            with operation_context(
                "inject",
                job_id=job.job_id,
                package=job.package,
                device=job.device_serial or "default",
            ) as job_log:
                for index, (stage, step) in enumerate(self.stages):
                    job.advance(stage, index / total)
                    if progress_callback:
                        progress_callback(job.progress)
                    EventLogger.log_stage_started(job_log, stage.value, job.progress)
                    step(job)
                job.complete()
                if progress_callback:
                    progress_callback(job.progress)
        except CaptureBridgeError as error:
            job.fail(error.kind, error.diagnostic)
            EventLogger.log_stage_failed(
                log.bind(job_id=job.job_id), job.stage.value, error.kind.value, error.diagnostic
            )
            if job.uninstalled:
                log.error(
                    f"{job.package} may no longer be installed on the device. "
                    f"Original package preserved at {job.original_package}"
                )
            return job
        self._cleanup(job)
        return job

    def _wait(self, condition: Callable[[], bool], description: str) -> bool:
        return bool(
            poll_until(
                condition,
                interval=self.config.poll_interval,
                timeout=self.config.poll_timeout,
                sleep=self.sleep,
                description=description,
            )
        )

    def _cleanup(self, job: InjectionJob) -> None:
        if job.work_dir is None or self.config.keep_work_dir:
            return
        shutil.rmtree(job.work_dir, ignore_errors=True)

    # --------------------------------------------------------------------------
    # Stages
    # --------------------------------------------------------------------------

    def check_prerequisites(self, job: InjectionJob) -> None:
        missing = self.apk.missing_prerequisites()
        if missing:
            raise ToolMissingError(missing)

    def resolve_abi(self, job: InjectionJob) -> None:
        log.info(f"Checking installed ABI for {job.package}")
        dump = shell(self.channel, job.device_serial, "pm", "dump", job.package)
        if not dump:
            raise AbiQueryFailedError(job.package, "pm dump returned no output")
        abi = parse_primary_abi(dump)
        if not abi:
            raise AbiQueryFailedError(job.package, "primaryCpuAbi not found")
        resolve_layer_abi(abi)
        log.info(f"primaryCpuAbi found: {abi}")
        job.abi = abi

    def locate_layer(self, job: InjectionJob) -> None:
        job.layer_path = find_capture_layer(self.config, parse_abi(job.abi))

    def pull_package(self, job: InjectionJob) -> None:
        device_path = package_path(self.channel, job.device_serial, job.package)
        if not device_path:
            raise PackageNotInstalledError(job.package)

        work_root = self.config.work_root
        try:
            if work_root is not None:
                work_root.mkdir(parents=True, exist_ok=True)
            job.work_dir = Path(
                tempfile.mkdtemp(prefix=f"{job.package}-", dir=str(work_root) if work_root else None)
            )
        except OSError as error:
            raise ConfigurationError(
                f"Cannot create a work directory under {work_root or 'the temp dir'}: {error}"
            ) from error
        original = job.work_dir / f"{job.package}.orig.apk"
        job.original_package = original

        log.info(f"Pulling {device_path} to patch")
        self.channel.run_on_device(job.device_serial, ["pull", device_path, str(original)])
        if not self._wait(original.is_file, f"pulled package {original.name}"):
            raise PullTimeoutError(device_path, str(original), self.config.poll_timeout)
        log.info("Original APK ready to go, continuing...")

    def verify_package(self, job: InjectionJob) -> None:
        log.info("Checking that APK can write to sdcard and reach the network")
        badging = self.apk.badging(job.original_package)
        missing = missing_permissions(badging)
        if missing:
            raise PermissionMissingError(job.package, missing)
        if not is_debuggable(badging):
            raise NotDebuggableError(job.package)

    def strip_signature(self, job: InjectionJob) -> None:
        patched = job.work_dir / f"{job.package}.patched.apk"
        try:
            shutil.copyfile(job.original_package, patched)
        except OSError as error:
            raise SignatureRemovalFailedError(str(patched)) from error
        job.patched_package = patched

        log.info("Checking for existing signature")
        entries = self.apk.list_entries(patched)
        if not entries:
            log.error(f"aapt list returned no entries for {patched.name}")
            raise SignatureRemovalFailedError(str(patched))
        matches = signature_entries(entries)
        for entry in matches:
            self.apk.remove_entry(patched, entry)
        log.info(f"{len(entries)} files searched, {len(matches)} removed")

        remaining = signature_entries(self.apk.list_entries(patched))
        if remaining:
            raise SignatureRemovalFailedError(str(patched), remaining)

    def inject_layer(self, job: InjectionJob) -> None:
        log.info("Adding capture layer")
        entry = f"lib/{job.abi}/{CAPTURE_LAYER_NAME}"
        staged = job.work_dir / entry
        try:
            staged.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(job.layer_path, staged)
        except OSError as error:
            raise LayerInjectionFailedError(str(job.patched_package), str(error)) from error

        result = self.apk.add_entry(job.patched_package, entry, cwd=job.work_dir)
        if not result.stdout.strip():
            raise LayerInjectionFailedError(str(job.patched_package), result.stderr.strip())

    def realign(self, job: InjectionJob) -> None:
        log.info("Realigning APK")
        aligned = job.work_dir / f"{job.package}.aligned.apk"
        result = self.apk.align(job.patched_package, aligned, cwd=job.work_dir)
        if result.stderr.strip():
            raise AlignmentFailedError(str(job.patched_package), result.stderr.strip())
        if not self._wait(aligned.is_file, f"aligned package {aligned.name}"):
            raise AlignmentFailedError(str(job.patched_package), "timeout reached aligning APK")
        job.aligned_package = aligned
        log.info("Aligned APK ready to go, continuing...")

    def debug_sign(self, job: InjectionJob) -> None:
        log.info("Signing with debug key")
        result = self.apk.sign(job.aligned_package, cwd=job.work_dir)
        if not signature_entries(self.apk.list_entries(job.aligned_package)):
            raise SigningFailedError(str(job.aligned_package), result.stderr.strip())
        log.info("Signature found, continuing...")

    def uninstall_original(self, job: InjectionJob) -> None:
        log.info("Uninstalling previous version of application")
        self.channel.run_on_device(job.device_serial, ["uninstall", job.package])
        job.uninstalled = True
        if not self._wait(
            lambda: not is_package_installed(self.channel, job.device_serial, job.package),
            f"{job.package} removal",
        ):
            raise UninstallTimeoutError(job.package, self.config.poll_timeout)
        log.info("Package removed")

    def install_patched(self, job: InjectionJob) -> None:
        log.info("Reinstalling APK")
        self.channel.run_on_device(
            job.device_serial, ["install", "--abi", job.abi, str(job.aligned_package)]
        )
        if not self._wait(
            lambda: is_package_installed(self.channel, job.device_serial, job.package),
            f"{job.package} install",
        ):
            raise InstallTimeoutError(
                job.package, self.config.poll_timeout, str(job.original_package)
            )
        log.info("Patched APK reinstalled, continuing...")


def search_for_layer(channel: DeviceChannel, serial: str, location: str) -> bool:
    log.info(f"Checking for layers in: {location}")
    found = shell(channel, serial, "find", location, "-name", CAPTURE_LAYER_NAME)
    if found:
        log.info(f"Found capture layer in {location}")
        return True
    return False


def check_capture_layer_present(channel: DeviceChannel, serial: str, package: str) -> bool:
    """Read-only check for the capture layer in the package or the debug location."""
    device_path = package_path(channel, serial, package)
    if device_path:
        lib_dir = device_path.rsplit("/", 1)[0] + "/lib"
        if search_for_layer(channel, serial, lib_dir):
            return True

    # Rooted devices only
    if search_for_layer(channel, serial, DEBUG_LAYER_LOCATION):
        return True

    log.warning("No capture layer for Vulkan was found")
    return False
