"""
Unit tests for the camera driver

Tests command routing, write parameters, device lifecycle and event
forwarding with the ONVIF client and vendor clients mocked.
"""

import json
import logging
import threading
import time
from datetime import datetime, timezone

import pytest
from unittest.mock import MagicMock, patch

from errors import (
    CommandValueError,
    CredentialsError,
    MissingProtocolError,
    NoSecondaryClientError,
    OnvifConnectionError,
)
from integrations.onvif_client import OnvifClient
from integrations.vendor_client import VendorKind
from models import (
    AsyncValues,
    CommandRequest,
    CommandValue,
    Device,
    DeviceProfile,
    OnvifUserParams,
    ValueType,
)
from services.camera_driver import CameraDriver, ONVIF_READ_COMMANDS


@pytest.fixture
def mock_onvif_class():
    with patch('services.camera_driver.OnvifClient') as mock_class:
        mock_class.return_value.address = "192.168.1.100"
        yield mock_class


@pytest.fixture
def onvif(mock_onvif_class):
    return mock_onvif_class.return_value


@pytest.fixture
def driver(fake_host, fast_settings, mock_onvif_class):
    return CameraDriver(fake_host, fast_settings)


@pytest.fixture
def bosch_vendor():
    vendor = MagicMock()
    vendor.kind = VendorKind.BOSCH
    with patch('services.camera_driver.new_vendor_client', return_value=vendor):
        yield vendor


def string_value(name, value):
    return CommandValue(name, ValueType.STRING, value)


class TestReadRouting:
    """Tests for read command dispatch"""

    def test_onvif_read(self, driver, onvif, http_protocols):
        """Test ONVIF resources are served by the ONVIF client"""
        onvif.get_device_information.return_value = '{"Model": "X"}'

        values = driver.handle_read_commands(
            "cam-100", http_protocols, [CommandRequest("onvif_device_information")]
        )

        assert len(values) == 1
        assert values[0].device_resource_name == "onvif_device_information"
        assert values[0].value_type is ValueType.STRING
        assert values[0].value == '{"Model": "X"}'

    def test_snapshot_is_binary(self, driver, onvif, http_protocols):
        """Test snapshots are returned as binary values"""
        onvif.get_snapshot.return_value = b"\xff\xd8"

        values = driver.handle_read_commands("cam-100", http_protocols, [CommandRequest("onvif_snapshot")])

        assert values[0].value_type is ValueType.BINARY
        assert values[0].value == b"\xff\xd8"

    def test_every_read_name_maps_to_a_method(self):
        """Test the read table only names existing client methods"""
        for name, (method, _) in ONVIF_READ_COMMANDS.items():
            assert callable(getattr(OnvifClient, method)), name

    def test_vendor_read_passthrough(self, driver, onvif, bosch_vendor, http_protocols):
        """Test unmatched names go verbatim to the vendor client"""
        expected = CommandValue("MotionAlarm", ValueType.BOOL, True)
        bosch_vendor.handle_read_command.return_value = expected
        req = CommandRequest("MotionAlarm", {"alarm_type": "14"})

        values = driver.handle_read_commands("cam-100", http_protocols, [req])

        assert values == [expected]
        bosch_vendor.handle_read_command.assert_called_once_with(req)
        bosch_vendor.camera_init.assert_called_once()

    def test_no_secondary_client(self, driver, onvif, http_protocols):
        """Test ONVIF-only cameras reject vendor resources"""
        with pytest.raises(NoSecondaryClientError) as exc_info:
            driver.handle_read_commands("cam-100", http_protocols, [CommandRequest("MotionAlarm")])

        assert str(exc_info.value) == "non-onvif command for camera without secondary client"

    def test_vendor_error_propagates_and_is_logged(self, driver, onvif, bosch_vendor, http_protocols, caplog):
        """Test vendor errors reach the caller unmodified"""
        bosch_vendor.handle_read_command.side_effect = CommandValueError("bad alarm_type")

        with caplog.at_level(logging.ERROR):
            with pytest.raises(CommandValueError):
                driver.handle_read_commands("cam-100", http_protocols, [CommandRequest("MotionAlarm")])

        assert "bad alarm_type" in caplog.text

    def test_clients_are_cached(self, driver, mock_onvif_class, onvif, http_protocols):
        """Test clients are built once per address"""
        onvif.get_hostname.return_value = '"cam"'

        driver.handle_read_commands("cam-100", http_protocols, [CommandRequest("OnvifHostname")])
        driver.handle_read_commands("cam-100", http_protocols, [CommandRequest("OnvifHostname")])

        assert mock_onvif_class.call_count == 1

    def test_missing_protocol(self, driver, caplog):
        """Test devices without an HTTP protocol are rejected and logged"""
        with caplog.at_level(logging.ERROR):
            with pytest.raises(MissingProtocolError) as exc_info:
                driver.handle_read_commands("cam-100", {}, [CommandRequest("OnvifHostname")])

        assert str(exc_info.value) == "unable to load config, 'HTTP' not exist"
        assert "cam-100" in caplog.text

    def test_onvif_connection_failure_not_cached(self, driver, mock_onvif_class, http_protocols):
        """Test a failed handshake is retried on the next command"""
        connected = MagicMock()
        connected.get_hostname.return_value = '"cam"'
        mock_onvif_class.side_effect = [OnvifConnectionError("192.168.1.100", "timeout"), connected]

        with pytest.raises(OnvifConnectionError):
            driver.handle_read_commands("cam-100", http_protocols, [CommandRequest("OnvifHostname")])
        driver.handle_read_commands("cam-100", http_protocols, [CommandRequest("OnvifHostname")])

        assert mock_onvif_class.call_count == 2


class TestCredentials:
    """Tests for credential lookup during client creation"""

    def test_digest_credentials_fetched(self, host_factory, fast_settings, mock_onvif_class, digest_protocols):
        """Test authenticated cameras are built with secret store credentials"""
        host = host_factory(
            devices=[Device("cam-101", "onvif-camera", digest_protocols)],
            profiles=[DeviceProfile("onvif-camera")],
            secrets={"cam101": {"username": "admin", "password": "secret"}},
        )
        driver = CameraDriver(host, fast_settings)

        driver.add_device("cam-101", digest_protocols)

        args = mock_onvif_class.call_args[0]
        assert args[:3] == ("192.168.1.101:8080", "admin", "secret")
        assert host.secret_calls == 1

    def test_no_auth_skips_secret_store(self, driver, fake_host, http_protocols):
        """Test unauthenticated cameras never read secrets"""
        driver.add_device("cam-100", http_protocols)
        assert fake_host.secret_calls == 0

    def test_missing_secret(self, host_factory, fast_settings, mock_onvif_class, digest_protocols):
        """Test an unavailable secret raises CredentialsError"""
        host = host_factory(devices=[], profiles=[], secrets={})
        driver = CameraDriver(host, fast_settings)

        with pytest.raises(CredentialsError):
            driver.add_device("cam-101", digest_protocols)

        mock_onvif_class.assert_not_called()


class TestWriteCommands:
    """Tests for write command dispatch"""

    def write(self, driver, protocols, name, param):
        driver.handle_write_commands("cam-100", protocols, [CommandRequest(name)], [param])

    def test_reboot_true(self, driver, onvif, http_protocols):
        """Test OnvifReboot true reboots the camera"""
        self.write(driver, http_protocols, "OnvifReboot", CommandValue("OnvifReboot", ValueType.BOOL, True))
        onvif.reboot.assert_called_once()

    def test_reboot_false_is_noop(self, driver, onvif, http_protocols):
        """Test OnvifReboot false does nothing"""
        self.write(driver, http_protocols, "OnvifReboot", CommandValue("OnvifReboot", ValueType.BOOL, False))
        onvif.reboot.assert_not_called()

    def test_reboot_requires_bool(self, driver, onvif, http_protocols):
        """Test OnvifReboot rejects non-bool parameters"""
        with pytest.raises(CommandValueError):
            self.write(driver, http_protocols, "OnvifReboot", string_value("OnvifReboot", "true"))
        onvif.reboot.assert_not_called()

    def test_hostname(self, driver, onvif, http_protocols):
        """Test OnvifHostname writes the string value"""
        self.write(driver, http_protocols, "OnvifHostname", string_value("OnvifHostname", "lobby"))
        onvif.set_hostname.assert_called_once_with("lobby")

    def test_hostname_from_dhcp(self, driver, onvif, http_protocols):
        """Test OnvifHostnameFromDHCP switches to DHCP naming"""
        self.write(driver, http_protocols, "OnvifHostnameFromDHCP", string_value("OnvifHostnameFromDHCP", ""))
        onvif.set_hostname_from_dhcp.assert_called_once_with()

    def test_user_json(self, driver, onvif, http_protocols):
        """Test OnvifUser JSON becomes user parameters"""
        payload = json.dumps({"Username": "op", "Password": "pw", "UserLevel": "Operator"})

        self.write(driver, http_protocols, "OnvifUser", string_value("OnvifUser", payload))

        onvif.create_user.assert_called_once_with(
            OnvifUserParams(Username="op", Password="pw", UserLevel="Operator")
        )

    def test_user_invalid_json(self, driver, onvif, http_protocols):
        """Test malformed JSON is a parameter error"""
        with pytest.raises(CommandValueError) as exc_info:
            self.write(driver, http_protocols, "OnvifUser", string_value("OnvifUser", "{not json"))

        assert "error unmarshaling string" in str(exc_info.value)
        onvif.create_user.assert_not_called()

    def test_user_requires_string(self, driver, onvif, http_protocols):
        """Test non-string parameters are rejected before parsing"""
        with pytest.raises(CommandValueError) as exc_info:
            self.write(driver, http_protocols, "OnvifUser", CommandValue("OnvifUser", ValueType.BOOL, True))

        assert "missing string value" in str(exc_info.value)

    def test_date_time_json(self, driver, onvif, http_protocols):
        """Test OnvifDateTime JSON sets the camera clock in UTC"""
        payload = json.dumps({"Year": 2024, "Month": 3, "Day": 9, "Hour": 8, "Minute": 7, "Second": 6})

        self.write(driver, http_protocols, "OnvifDateTime", string_value("OnvifDateTime", payload))

        onvif.set_system_date_and_time.assert_called_once_with(
            datetime(2024, 3, 9, 8, 7, 6, tzinfo=timezone.utc)
        )

    def test_date_time_out_of_range(self, driver, onvif, http_protocols):
        """Test impossible dates are parameter errors"""
        payload = json.dumps({"Year": 2024, "Month": 13, "Day": 1})
        with pytest.raises(CommandValueError):
            self.write(driver, http_protocols, "OnvifDateTime", string_value("OnvifDateTime", payload))

    def test_vendor_write_without_secondary(self, driver, onvif, http_protocols):
        """Test unknown writes on ONVIF-only cameras are rejected"""
        with pytest.raises(NoSecondaryClientError):
            self.write(driver, http_protocols, "MotionAlarm", CommandValue("MotionAlarm", ValueType.BOOL, True))

    def test_vendor_write_passthrough(self, driver, onvif, bosch_vendor, http_protocols):
        """Test unknown writes go to the vendor client"""
        param = CommandValue("Relay", ValueType.BOOL, True)
        self.write(driver, http_protocols, "Relay", param)
        bosch_vendor.handle_write_command.assert_called_once_with(CommandRequest("Relay"), param)

    def test_param_count_mismatch(self, driver, onvif, http_protocols):
        """Test every request needs a parameter"""
        with pytest.raises(CommandValueError):
            driver.handle_write_commands("cam-100", http_protocols, [CommandRequest("OnvifHostname")], [])


class TestDeviceLifecycle:
    """Tests for device callbacks, initialize and stop"""

    def test_remove_device_releases_clients(self, driver, onvif, bosch_vendor, http_protocols):
        """Test removal releases the vendor client and forgets both clients"""
        driver.add_device("cam-100", http_protocols)

        driver.remove_device("cam-100", http_protocols)

        bosch_vendor.camera_release.assert_called_once_with(force=False)
        onvif.close.assert_called_once()
        assert driver.registry.get_onvif_client("192.168.1.100") is None
        assert driver.registry.get_vendor_client("192.168.1.100") is None

    def test_remove_during_client_creation_releases_new_client(self, driver, onvif, bosch_vendor, http_protocols):
        """Test a device removed while its clients are being built leaves nothing behind"""
        initializing = threading.Event()

        def slow_init(*args):
            initializing.set()
            time.sleep(0.1)

        bosch_vendor.camera_init.side_effect = slow_init
        adder = threading.Thread(target=driver.add_device, args=("cam-100", http_protocols))
        adder.start()
        assert initializing.wait(1)

        driver.remove_device("cam-100", http_protocols)
        adder.join()

        bosch_vendor.camera_release.assert_called_once_with(force=False)
        onvif.close.assert_called_once()
        assert driver.registry.get_vendor_client("192.168.1.100") is None

    def test_disconnect_device_releases_clients(self, driver, onvif, bosch_vendor, http_protocols):
        """Test disconnect behaves like removal"""
        driver.add_device("cam-100", http_protocols)
        driver.disconnect_device("cam-100", http_protocols)

        bosch_vendor.camera_release.assert_called_once_with(force=False)
        assert driver.registry.get_onvif_client("192.168.1.100") is None

    def test_update_device_is_noop(self, driver, mock_onvif_class, http_protocols):
        """Test updates do not touch clients"""
        driver.update_device("cam-100", http_protocols)
        mock_onvif_class.assert_not_called()

    def test_initialize_creates_clients_and_forwards_events(self, driver, onvif):
        """Test initialize connects known devices and forwards async values"""
        received = []
        delivered = threading.Event()

        def sink(device_name, values):
            received.append((device_name, values))
            delivered.set()

        driver.initialize(sink)
        assert driver.registry.get_onvif_client("192.168.1.100") is onvif

        value = CommandValue("MotionAlarm", ValueType.BOOL, True)
        driver.async_queue.put(AsyncValues("cam-100", [value]))

        assert delivered.wait(2)
        assert received == [("cam-100", [value])]
        driver.stop()

    def test_initialize_skips_failing_devices(self, driver, mock_onvif_class, caplog):
        """Test a device that cannot connect does not abort initialize"""
        mock_onvif_class.side_effect = OnvifConnectionError("192.168.1.100", "timeout")

        with caplog.at_level(logging.ERROR):
            driver.initialize(MagicMock())

        assert "cam-100" in caplog.text
        assert driver.registry.get_onvif_client("192.168.1.100") is None
        driver.stop()

    def test_stop_releases_everything(self, driver, onvif, bosch_vendor, http_protocols):
        """Test stop releases vendor clients with the given force flag"""
        driver.initialize(MagicMock())

        driver.stop(force=True)

        bosch_vendor.camera_release.assert_called_once_with(True)
        onvif.close.assert_called_once()
        assert driver.registry.get_onvif_client("192.168.1.100") is None
        assert driver.registry.get_vendor_client("192.168.1.100") is None
