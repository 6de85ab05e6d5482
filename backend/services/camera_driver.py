# backend/services/camera_driver.py
"""
Camera Driver

Entry points the host framework calls:
- initialize / stop
- read and write command dispatch
- device add / update / remove / disconnect

Resources with a known ONVIF name are served by the camera's ONVIF client;
everything else goes verbatim to its vendor client (Bosch RCP, Axis VAPIX).
Vendor clients report asynchronous events on a shared queue, which a
forwarder thread hands to the host's event sink.
"""

import logging
import queue
import threading
from typing import Callable, Dict, List, Optional, Tuple

from config import Settings, get_settings
from errors import CommandValueError, NoSecondaryClientError
from integrations.onvif_client import OnvifClient
from integrations.vendor_client import VendorClient, VendorKind
from models import (
    CameraInfo,
    CommandRequest,
    CommandValue,
    OnvifDateTimeParams,
    OnvifUserParams,
    ValueType,
    address_from_protocols,
    params_from_value,
)

from .client_registry import ClientRegistry, new_vendor_client
from .credentials import CredentialProvider
from .host_service import HostService

logger = logging.getLogger(__name__)

AsyncSink = Callable[[str, List[CommandValue]], None]

# Read resources served by ONVIF: name -> (OnvifClient method, value type)
ONVIF_READ_COMMANDS: Dict[str, Tuple[str, ValueType]] = {
    "onvif_device_information": ("get_device_information", ValueType.STRING),
    "onvif_profile_information": ("get_profile_information", ValueType.STRING),
    "OnvifDateTime": ("get_system_date_and_time", ValueType.STRING),
    "OnvifHostname": ("get_hostname", ValueType.STRING),
    "onvif_dns": ("get_dns", ValueType.STRING),
    "onvif_network_interfaces": ("get_network_interfaces", ValueType.STRING),
    "onvif_network_protocols": ("get_network_protocols", ValueType.STRING),
    "onvif_network_default_gateway": ("get_network_default_gateway", ValueType.STRING),
    "onvif_ntp": ("get_ntp", ValueType.STRING),
    "onvif_system_reboot": ("reboot", ValueType.STRING),
    "onvif_users": ("get_users", ValueType.STRING),
    "onvif_snapshot": ("get_snapshot", ValueType.BINARY),
    "OnvifStreamURI": ("get_stream_uri", ValueType.STRING),
}

_STOP_FORWARDER = object()


class CameraDriver:
    """
    Routes host commands to per-camera protocol clients.

    Clients are created on first use (or on device add) and kept in the
    registry until the device is removed or the driver stops.
    """

    def __init__(
        self,
        host: HostService,
        settings: Optional[Settings] = None,
        registry: Optional[ClientRegistry] = None
    ):
        self.host = host
        self.settings = settings or get_settings()
        self.registry = registry or ClientRegistry()
        self.credentials = CredentialProvider(host, self.settings)

        self.async_queue: "queue.Queue" = queue.Queue()
        self._async_sink: Optional[AsyncSink] = None
        self._forwarder: Optional[threading.Thread] = None

        self._write_handlers = {
            "OnvifUser": self._write_user,
            "OnvifReboot": self._write_reboot,
            "OnvifHostname": self._write_hostname,
            "OnvifHostnameFromDHCP": self._write_hostname_from_dhcp,
            "OnvifDateTime": self._write_date_time,
        }

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def initialize(self, async_sink: AsyncSink) -> None:
        """
        Start event forwarding and create clients for known devices.

        A device that fails to connect is logged and skipped; its clients
        are retried on the next command for it.
        """
        self._async_sink = async_sink
        self._forwarder = threading.Thread(
            target=self._forward_events,
            name="camera-event-forwarder",
            daemon=True,
        )
        self._forwarder.start()

        for device in self.host.devices():
            try:
                self.add_device(device.name, device.protocols)
            except Exception as e:
                logger.error(f"Failed to initialize clients for device {device.name}: {e}")

        logger.info("Camera driver initialized")

    def stop(self, force: bool = False) -> None:
        """Release every vendor client and stop event forwarding"""
        onvif_clients, vendor_clients = self.registry.clear()
        for client in vendor_clients:
            client.camera_release(force)
        for onvif in onvif_clients:
            onvif.close()

        if self._forwarder is not None:
            self.async_queue.put(_STOP_FORWARDER)
            if not force:
                self._forwarder.join()
            self._forwarder = None

        logger.info(f"Camera driver stopped (force={force})")

    def _forward_events(self) -> None:
        while True:
            item = self.async_queue.get()
            if item is _STOP_FORWARDER:
                return

            try:
                self._async_sink(item.device_name, item.command_values)
            except Exception as e:
                logger.error(f"Async event sink failed for {item.device_name}: {e}")

    # =========================================================================
    # DEVICE CALLBACKS
    # =========================================================================

    def add_device(self, device_name: str, protocols: Dict[str, Dict[str, str]]) -> None:
        try:
            self._clients_for(device_name, protocols)
        except Exception as e:
            logger.error(f"Failed to add device {device_name}: {e}")
            raise
        logger.info(f"Device {device_name} added")

    def update_device(self, device_name: str, protocols: Dict[str, Dict[str, str]]) -> None:
        logger.debug(f"Device {device_name} updated")

    def remove_device(self, device_name: str, protocols: Dict[str, Dict[str, str]]) -> None:
        self._release_device(device_name, protocols)
        logger.info(f"Device {device_name} removed")

    def disconnect_device(self, device_name: str, protocols: Dict[str, Dict[str, str]]) -> None:
        self._release_device(device_name, protocols)
        logger.info(f"Device {device_name} disconnected")

    def _release_device(self, device_name: str, protocols: Dict[str, Dict[str, str]]) -> None:
        try:
            address = address_from_protocols(protocols)
        except Exception as e:
            logger.error(f"Failed to release device {device_name}: {e}")
            raise

        onvif, vendor = self.registry.remove(address)
        if vendor is not None:
            vendor.camera_release(force=False)
        if onvif is not None:
            onvif.close()

    # =========================================================================
    # CLIENTS
    # =========================================================================

    def _clients_for(
        self,
        device_name: str,
        protocols: Dict[str, Dict[str, str]]
    ) -> Tuple[OnvifClient, VendorClient]:
        """ONVIF and vendor client for a device, created on first use"""
        info = CameraInfo.from_protocols(protocols)

        onvif = self.registry.get_onvif_client(info.address)
        vendor = self.registry.get_vendor_client(info.address)
        if onvif is not None and vendor is not None:
            return onvif, vendor

        username, password = "", ""
        if info.auth_method.requires_credentials:
            username, password = self.credentials.get_credentials(info.credential_paths)

        return self.registry.get_or_create_clients(
            info.address,
            lambda: OnvifClient(info.address, username, password, info.auth_method, self.settings),
            lambda: self._new_vendor_client(device_name, info.address, username, password),
        )

    def _new_vendor_client(self, device_name: str, address: str, username: str, password: str) -> VendorClient:
        device = self.host.get_device_by_name(device_name)
        profile = self.host.get_profile_by_name(device.profile_name)

        kind = VendorKind.from_labels(profile.labels)
        client = new_vendor_client(kind, self.async_queue, self.settings)
        client.camera_init(device, profile, address, username, password)

        logger.info(f"Created {kind.value} vendor client for {device_name} at {address}")
        return client

    # =========================================================================
    # COMMANDS
    # =========================================================================

    def handle_read_commands(
        self,
        device_name: str,
        protocols: Dict[str, Dict[str, str]],
        reqs: List[CommandRequest]
    ) -> List[CommandValue]:
        """Answer each request from ONVIF or, failing a match, the vendor client"""
        try:
            onvif, vendor = self._clients_for(device_name, protocols)
            return [self._read(onvif, vendor, req) for req in reqs]
        except Exception as e:
            logger.error(f"Read command failed for {device_name}: {e}")
            raise

    def _read(self, onvif: OnvifClient, vendor: VendorClient, req: CommandRequest) -> CommandValue:
        name = req.device_resource_name
        command = ONVIF_READ_COMMANDS.get(name)
        if command is not None:
            method, value_type = command
            return CommandValue(name, value_type, getattr(onvif, method)())

        if vendor is None or vendor.kind is VendorKind.NONE:
            raise NoSecondaryClientError(name, onvif.address)
        return vendor.handle_read_command(req)

    def handle_write_commands(
        self,
        device_name: str,
        protocols: Dict[str, Dict[str, str]],
        reqs: List[CommandRequest],
        params: List[CommandValue]
    ) -> None:
        """Apply each write request with its parameter, stopping at the first error"""
        try:
            if len(reqs) != len(params):
                raise CommandValueError(f"{len(reqs)} write requests but {len(params)} parameters")

            onvif, vendor = self._clients_for(device_name, protocols)
            for req, param in zip(reqs, params):
                self._write(onvif, vendor, req, param)
        except Exception as e:
            logger.error(f"Write command failed for {device_name}: {e}")
            raise

    def _write(self, onvif: OnvifClient, vendor: VendorClient, req: CommandRequest, param: CommandValue) -> None:
        name = req.device_resource_name
        handler = self._write_handlers.get(name)
        if handler is not None:
            handler(onvif, param)
            return

        if vendor is None or vendor.kind is VendorKind.NONE:
            raise NoSecondaryClientError(name, onvif.address)
        vendor.handle_write_command(req, param)

    def _write_user(self, onvif: OnvifClient, param: CommandValue) -> None:
        onvif.create_user(params_from_value(param, OnvifUserParams))

    def _write_reboot(self, onvif: OnvifClient, param: CommandValue) -> None:
        # false is accepted and ignored
        if param.bool_value():
            onvif.reboot()

    def _write_hostname(self, onvif: OnvifClient, param: CommandValue) -> None:
        onvif.set_hostname(param.string_value())

    def _write_hostname_from_dhcp(self, onvif: OnvifClient, param: CommandValue) -> None:
        onvif.set_hostname_from_dhcp()

    def _write_date_time(self, onvif: OnvifClient, param: CommandValue) -> None:
        date_time = params_from_value(param, OnvifDateTimeParams)
        try:
            when = date_time.to_datetime()
        except ValueError as e:
            raise CommandValueError(f"invalid date/time: {e}", resource=param.device_resource_name)
        onvif.set_system_date_and_time(when)
