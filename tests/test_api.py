"""Tests for the public entry points."""

import dataclasses

import pytest
from conftest import PACKAGE, FakeChannel

from capture_bridge import api
from capture_bridge.android.adb import AdbChannel
from capture_bridge.config.settings import BridgeConfig
from capture_bridge.domain import Device
from capture_bridge.remote.ports import PortAddressSpace


HOST = "adb:0:emulator-5554"


class TestDiscovery:
    """Test target and device discovery entry points."""

    def test_enumerate_remote_targets(self, config):
        channel = FakeChannel(live_ports={38971, 38975})

        first = api.enumerate_remote_targets(HOST, 0, config=config, channel=channel)
        second = api.enumerate_remote_targets(HOST, first, config=config, channel=channel)
        done = api.enumerate_remote_targets(HOST, second, config=config, channel=channel)

        assert (first, second, done) == (38971, 38975, 0)

    def test_enumerate_android_devices_forwards_ports(self, config):
        channel = FakeChannel()
        channel.on_device(
            "devices", stdout="List of devices attached\nemulator-5554\tdevice\nR58M\tdevice\n"
        )
        channel.on_device("shell", "getprop", "ro.product.model", stdout="Pixel 7\n")

        devices = api.enumerate_android_devices(config=config, channel=channel)

        assert devices == [
            Device(serial="emulator-5554", ordinal=0, label="Pixel 7"),
            Device(serial="R58M", ordinal=1, label="Pixel 7"),
        ]
        forwards = [call for call in channel.calls if call[2][0] == "forward"]
        assert [(call[1], call[2][1]) for call in forwards] == [
            ("emulator-5554", "tcp:39970"),
            ("emulator-5554", "tcp:38970"),
            ("R58M", "tcp:40020"),
            ("R58M", "tcp:39020"),
        ]

    def test_device_without_name_has_no_label(self, config):
        channel = FakeChannel()
        channel.on_device("devices", stdout="List of devices attached\nabc\tdevice\n")

        devices = api.enumerate_android_devices(config=config, channel=channel)

        assert devices[0].label is None
        assert devices[0].format_label() == "abc"

    def test_device_hosts(self, config):
        channel = FakeChannel()
        channel.on_device("devices", stdout="List of devices attached\nabc\tdevice\ndef\tdevice\n")

        assert api.device_hosts(config=config, channel=channel) == ["adb:0:abc", "adb:1:def"]

    def test_devices_beyond_port_limit_skipped(self, config):
        config = dataclasses.replace(config, ports=PortAddressSpace(max_devices=1))
        channel = FakeChannel()
        channel.on_device("devices", stdout="List of devices attached\nabc\tdevice\ndef\tdevice\n")

        assert api.device_hosts(config=config, channel=channel) == ["adb:0:abc"]
        assert not [call for call in channel.calls if call[1] == "def"]

    def test_get_friendly_name(self, config):
        channel = FakeChannel()
        channel.on_device("shell", "getprop", "ro.product.manufacturer", stdout="Samsung\n")

        assert api.get_friendly_name(HOST, config=config, channel=channel) == "Samsung device"
        assert {call[1] for call in channel.calls} == {"emulator-5554"}


class TestInjection:
    """Test the injection entry point."""

    def test_add_capture_layer_success(self, config, channel, device, layer_file):
        reported = []

        ok = api.add_capture_layer_to_package(
            HOST, PACKAGE, reported.append, config=config, channel=channel
        )

        assert ok is True
        assert reported[-1] == 1.0

    def test_add_capture_layer_failure(self, config, channel, device):
        ok = api.add_capture_layer_to_package(HOST, PACKAGE, config=config, channel=channel)
        assert ok is False

    def test_run_injection_returns_job(self, config, channel, device):
        job = api.run_injection(HOST, PACKAGE, config=config, channel=channel)
        assert job.package == PACKAGE
        assert job.is_finished


class TestLaunchAndCheck:
    """Test launch, layer check and server entry points."""

    def test_start_package_for_capture(self, config):
        channel = FakeChannel(live_ports={38970})

        assert api.start_package_for_capture(HOST, PACKAGE, config=config, channel=channel) == 38970

    def test_check_capture_layer_present(self, config, channel, device):
        assert api.check_capture_layer_present(HOST, PACKAGE, config=config, channel=channel) is False

    def test_start_server_reports_failure(self, config):
        channel = FakeChannel()
        assert api.start_android_remote_server(HOST, config=config, channel=channel) is False

    def test_default_remote_server_port(self, config):
        assert api.get_default_remote_server_port(config=config) == 39920


class TestDefaults:
    """Test construction of config and channel when omitted."""

    def test_loads_config_when_missing(self, config, mocker):
        load = mocker.patch.object(api, "load_config", return_value=config)
        channel = FakeChannel()

        api.enumerate_remote_targets(HOST, 0, channel=channel)

        load.assert_called_once_with()

    def test_builds_adb_channel_when_missing(self, config, mocker):
        channel_cls = mocker.patch.object(api, "AdbChannel", return_value=FakeChannel())

        api.enumerate_remote_targets(HOST, 0, config=config)

        channel_cls.assert_called_once_with(config)

    def test_default_port_from_settings(self, mocker):
        mocker.patch.object(api, "load_config", return_value=BridgeConfig())
        assert api.get_default_remote_server_port() == 39920


class TestUnreachableDevice:
    """Test that entry points report a missing adb instead of raising."""

    @pytest.fixture
    def adb_channel(self, config, tmp_path):
        config = dataclasses.replace(config, adb_exe_path=str(tmp_path / "missing" / "adb"))
        return AdbChannel(config)

    def test_start_package_for_capture_returns_zero(self, config, adb_channel):
        port = api.start_package_for_capture(HOST, PACKAGE, config=config, channel=adb_channel)
        assert port == 0

    def test_check_capture_layer_present_returns_false(self, config, adb_channel):
        present = api.check_capture_layer_present(
            HOST, PACKAGE, config=config, channel=adb_channel
        )
        assert present is False

    def test_start_server_returns_false(self, config, adb_channel):
        assert api.start_android_remote_server(HOST, config=config, channel=adb_channel) is False


class TestInjectionFailures:
    """Test that injection failures surface as a false result."""

    def test_unusable_work_root(self, config, channel, device, layer_file, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        config = dataclasses.replace(config, work_root=blocker / "work")

        assert api.add_capture_layer_to_package(HOST, PACKAGE, config=config, channel=channel) is False
