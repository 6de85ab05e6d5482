# backend/integrations/onvif_client.py
"""
ONVIF Client for Camera Management

This module wraps one ONVIF camera for the driver:
- Device information, hostname, DNS, network and NTP queries
- Media profile, stream URI and snapshot retrieval
- User management, reboot and manual date/time changes

Every operation is a stateless request/response; results are serialized to
JSON text (raw bytes for snapshots). Uses onvif-zeep for SOAP/WSDL
communication.
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional, Tuple

import requests
from onvif import ONVIFCamera
from requests.auth import HTTPBasicAuth
from zeep.helpers import serialize_object
from zeep.transports import Transport

from config import Settings, get_settings
from errors import (
    CameraTransportError,
    MarshalError,
    NoProfilesFoundError,
    OnvifConnectionError,
    OnvifRequestError,
    SnapshotStatusError,
)
from models import AuthMethod, OnvifUserParams

from .digest_client import DigestClient

logger = logging.getLogger(__name__)

DEFAULT_ONVIF_PORT = 80


def parse_address(address: str) -> Tuple[str, int]:
    """
    Split "host[:port]" into host and port (default 80)

    IPv6 literals may be written "[addr]" or "[addr]:port"; the host keeps
    its brackets so it can be put back into a URL. A bare IPv6 literal
    without brackets has no port.
    """
    if "://" in address:
        address = address.split("://", 1)[1]
    address = address.split("/", 1)[0]

    if address.startswith("["):
        host, sep, rest = address.partition("]")
        if not sep or (rest and not rest.startswith(":")):
            raise ValueError(f"invalid IPv6 camera address '{address}'")
        host += "]"
        if not rest:
            return host, DEFAULT_ONVIF_PORT
        try:
            return host, int(rest[1:])
        except ValueError:
            raise ValueError(f"invalid port in camera address '{address}'")

    if address.count(":") > 1:
        return f"[{address}]", DEFAULT_ONVIF_PORT

    if address.count(":") == 1:
        host, port_str = address.split(":")
        try:
            return host, int(port_str)
        except ValueError:
            raise ValueError(f"invalid port in camera address '{address}'")
    return address, DEFAULT_ONVIF_PORT


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, bytes):
        return value.hex()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class OnvifClient:
    """
    ONVIF protocol client for one IP camera

    Construction performs the device initialization handshake and raises
    OnvifConnectionError if the camera cannot be reached.
    """

    def __init__(
        self,
        address: str,
        username: str,
        password: str,
        auth_method: AuthMethod = AuthMethod.NONE,
        settings: Optional[Settings] = None
    ):
        """
        Initialize ONVIF client

        Args:
            address: Camera address ("host" or "host:port")
            username: Camera username
            password: Camera password
            auth_method: How snapshot URIs are authenticated
            settings: Timeouts (defaults to global settings)
        """
        self.address = address
        self.username = username
        self.password = password
        self.auth_method = auth_method
        self.settings = settings or get_settings()

        try:
            self.host, self.port = parse_address(address)
            transport = Transport(
                timeout=self.settings.onvif_timeout_seconds,
                operation_timeout=self.settings.onvif_timeout_seconds,
            )
            # Note: adjust_time=True is critical for authentication
            # ONVIF uses WS-Security with timestamps, and time drift between
            # client and camera causes auth failures even with correct credentials
            self.camera = ONVIFCamera(
                self.host,
                self.port,
                username if auth_method.requires_credentials else "",
                password if auth_method.requires_credentials else "",
                adjust_time=True,
                transport=transport,
            )
            self.device_mgmt = self.camera.create_devicemgmt_service()
            self.media = self.camera.create_media_service()
        except Exception as e:
            logger.error(f"Error initializing ONVIF client for {address}: {e}")
            raise OnvifConnectionError(address, str(e)) from e

        self.session = requests.Session()
        self.digest_client = DigestClient(
            username,
            password,
            session=self.session,
            timeout=self.settings.camera_snapshot_timeout_seconds,
        )

        logger.info(f"Successfully connected to ONVIF camera at {address}")

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _call(self, operation: str, fn: Callable, *args) -> Any:
        try:
            return fn(*args)
        except Exception as e:
            raise OnvifRequestError(operation, self.address, str(e)) from e

    def _to_json(self, operation: str, result: Any) -> str:
        try:
            return json.dumps(serialize_object(result, dict), default=_json_default)
        except (TypeError, ValueError) as e:
            raise MarshalError(operation, str(e)) from e

    def _query(self, operation: str, fn: Callable, *args) -> str:
        return self._to_json(operation, self._call(operation, fn, *args))

    def _first_profile_token(self, operation: str) -> str:
        """
        Token of media profile 0.

        Cameras with several profiles are served from the first one only.
        """
        profiles = self._call(operation, self.media.GetProfiles)
        if not profiles:
            raise NoProfilesFoundError(self.address)
        return profiles[0].token

    # =========================================================================
    # DEVICE MANAGEMENT
    # =========================================================================

    def get_device_information(self) -> str:
        return self._query("GetDeviceInformation", self.device_mgmt.GetDeviceInformation)

    def get_system_date_and_time(self) -> str:
        return self._query("GetSystemDateAndTime", self.device_mgmt.GetSystemDateAndTime)

    def get_hostname(self) -> str:
        return self._query("GetHostname", self.device_mgmt.GetHostname)

    def get_dns(self) -> str:
        return self._query("GetDNS", self.device_mgmt.GetDNS)

    def get_network_interfaces(self) -> str:
        return self._query("GetNetworkInterfaces", self.device_mgmt.GetNetworkInterfaces)

    def get_network_protocols(self) -> str:
        return self._query("GetNetworkProtocols", self.device_mgmt.GetNetworkProtocols)

    def get_network_default_gateway(self) -> str:
        return self._query("GetNetworkDefaultGateway", self.device_mgmt.GetNetworkDefaultGateway)

    def get_ntp(self) -> str:
        return self._query("GetNTP", self.device_mgmt.GetNTP)

    def get_users(self) -> str:
        return self._query("GetUsers", self.device_mgmt.GetUsers)

    def reboot(self) -> str:
        logger.info(f"Rebooting camera at {self.address}")
        return self._query("SystemReboot", self.device_mgmt.SystemReboot)

    def set_hostname(self, name: str) -> None:
        self._call("SetHostname", self.device_mgmt.SetHostname, {"Name": name})

    def set_hostname_from_dhcp(self) -> None:
        self._call("SetHostnameFromDHCP", self.device_mgmt.SetHostnameFromDHCP, {"FromDHCP": True})

    def set_system_date_and_time(self, when: datetime) -> None:
        """Switch the camera clock to manual and set it to ``when`` (UTC)"""
        if when.tzinfo is not None:
            when = when.astimezone(timezone.utc)

        request = {
            "DateTimeType": "Manual",
            "DaylightSavings": False,
            "UTCDateTime": {
                "Date": {"Year": when.year, "Month": when.month, "Day": when.day},
                "Time": {"Hour": when.hour, "Minute": when.minute, "Second": when.second},
            },
        }
        self._call("SetSystemDateAndTime", self.device_mgmt.SetSystemDateAndTime, request)

    def create_user(self, user: OnvifUserParams) -> None:
        onvif_user = {
            "Username": user.Username,
            "Password": user.Password,
            "UserLevel": user.UserLevel,
        }
        if user.Extension is not None:
            onvif_user["Extension"] = user.Extension
        self._call("CreateUsers", self.device_mgmt.CreateUsers, {"User": [onvif_user]})

    # =========================================================================
    # MEDIA
    # =========================================================================

    def get_profile_information(self) -> str:
        return self._query("GetProfiles", self.media.GetProfiles)

    def get_stream_uri(self) -> str:
        token = self._first_profile_token("GetStreamUri")
        request = {
            "StreamSetup": {"Stream": "RTP-Unicast", "Transport": {"Protocol": "RTSP"}},
            "ProfileToken": token,
        }
        return self._query("GetStreamUri", self.media.GetStreamUri, request)

    def get_snapshot(self) -> bytes:
        """Resolve the snapshot URI of profile 0 and download the image"""
        token = self._first_profile_token("GetSnapshotUri")
        uri_response = self._call("GetSnapshotUri", self.media.GetSnapshotUri, {"ProfileToken": token})
        return self._fetch_image(str(uri_response.Uri))

    def _fetch_image(self, url: str) -> bytes:
        if self.auth_method.is_digest:
            response = self.digest_client.get(url)
        else:
            auth = HTTPBasicAuth(self.username, self.password) if self.auth_method is AuthMethod.BASIC else None
            try:
                response = self.session.get(
                    url,
                    auth=auth,
                    timeout=self.settings.camera_snapshot_timeout_seconds,
                )
            except requests.exceptions.RequestException as e:
                raise CameraTransportError(f"GET {url} failed: {e}", address=self.address) from e

        try:
            if response.status_code != 200:
                raise SnapshotStatusError(self.address, response.status_code)
            return response.content
        finally:
            response.close()

    def close(self) -> None:
        self.session.close()
