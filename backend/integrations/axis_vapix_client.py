# backend/integrations/axis_vapix_client.py
"""
Axis VAPIX Trigger Listener

Listens for analytics triggers on Axis cameras:
- Persistent MJPEG stream (multipart/x-mixed-replace) per camera
- JPEG COM markers scanned for the Axis trigger tag
- Boolean alarm state per alarm code, change events pushed upstream

VAPIX Information:
- Endpoint: http://<camera>/axis-cgi/mjpg/video.cgi?fps=1
- Authentication: HTTP Digest
- Trigger payload: "<2-char code>=<flag>;..." after tag 0x0a03 in a COM
  segment; flag '1' means active
- Uses older VAPIX behaviour and may not work with every Axis model
"""

import logging
import queue
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import requests

from config import Settings
from errors import (
    CameraAdapterError,
    CameraTransportError,
    UnrecognizedCommandError,
)
from models import (
    AsyncValues,
    CommandRequest,
    CommandValue,
    Device,
    DeviceProfile,
    DeviceResource,
    ValueType,
)

from .digest_client import DigestClient
from .multipart_stream import MultipartStreamReader, multipart_boundary
from .packet_reader import PacketReader
from .vendor_client import BackgroundVendorClient, ClientState, VendorKind

logger = logging.getLogger(__name__)

VAPIX_URL = "http://{address}/axis-cgi/mjpg/video.cgi?fps={fps}"

ALARM_CODE_ATTRIBUTE = "alarm_code"

JPEG_COM_MARKER = 0xFE
AXIS_TRIGGER_TAG = 0x0a03


class ListenCancelled(Exception):
    """Listener observed the stop signal; not an error"""
    pass


@dataclass
class Trigger:
    """Alarm code and state parsed from one MJPEG part"""
    alarm_code: str
    state: bool


def triggers_from_string(trigger_string: str, alarm_codes: Iterable[str]) -> Optional[Trigger]:
    """
    Parse "AA=1;BB=0" style trigger text.

    The last registered code wins; parsing stops at the first segment
    shorter than four characters.
    """
    codes = set(alarm_codes)
    trigger = None
    for segment in trigger_string.split(";"):
        if len(segment) < 4:
            return trigger
        alarm_code = segment[0:2]
        if alarm_code in codes:
            trigger = Trigger(alarm_code=alarm_code, state=segment[3] == "1")
    return trigger


def parse_triggers(data: bytes, alarm_codes: Iterable[str]) -> Optional[Trigger]:
    """
    Find the Axis trigger comment in a JPEG frame.

    Only the first COM segment carrying the trigger tag is considered.
    Malformed segments are skipped.
    """
    packet = PacketReader(data)
    for i in range(len(data) - 4):
        if data[i] != 0xFF or data[i + 1] != JPEG_COM_MARKER:
            continue

        # Segment length counts its own two bytes
        length = packet.uint16(i + 2)
        end = i + 2 + length
        if length < 4 or end > len(data):
            continue

        if packet.uint16(i + 4) == AXIS_TRIGGER_TAG:
            text = data[i + 6:end].decode("latin-1").strip("\x00\r\n ")
            return triggers_from_string(text, alarm_codes)

    return None


class AxisVapixClient(BackgroundVendorClient):
    """
    Client for Axis analytics triggers carried in the MJPEG stream.

    States: UNINITIALIZED -> LISTENING (camera_init) -> STOPPED
    (camera_release, or error budget exhausted). All data arrives through
    the async queue; reads and writes are never served.
    """

    kind = VendorKind.AXIS
    running_state = ClientState.LISTENING

    def __init__(
        self,
        async_queue: "queue.Queue[AsyncValues]",
        settings: Optional[Settings] = None,
        client: Optional[DigestClient] = None
    ):
        super().__init__(async_queue, settings)
        self.client = client

        self.alarms: Dict[str, DeviceResource] = {}
        self.alarm_states: Dict[str, bool] = {}

        self.retry_delay = self.settings.axis_retry_delay_seconds
        self.max_errors = self.settings.axis_max_errors
        self._parts_received = 0

    def camera_init(
        self,
        device: Device,
        profile: DeviceProfile,
        address: str,
        username: str,
        password: str
    ) -> None:
        if self.client is None:
            self.client = DigestClient(
                username,
                password,
                timeout=(
                    self.settings.camera_http_timeout_seconds,
                    self.settings.axis_stream_read_timeout_seconds,
                ),
            )

        self.device_name = device.name
        self.address = address
        self.register_watches(profile.device_resources)

        logger.info(f"Starting VAPIX trigger listener for {device.name} at {address} ({len(self.alarms)} alarms)")
        self._start(self._retry_loop)

    def register_watches(self, resources: List[DeviceResource]) -> None:
        with self._state_lock:
            for resource in resources:
                alarm_code = resource.attributes.get(ALARM_CODE_ATTRIBUTE)
                if alarm_code:
                    self.alarms[alarm_code] = resource
                    self.alarm_states[alarm_code] = False

    def _retry_loop(self) -> None:
        errors_left = self.max_errors
        while True:
            self._parts_received = 0
            try:
                self.listen_for_triggers()
            except ListenCancelled:
                logger.info(f"VAPIX listener for {self.address} stopped")
                return
            except CameraAdapterError as e:
                logger.error(f"VAPIX listener for {self.address}: {e}")

            # A cycle that delivered frames counts as healthy
            if self._parts_received:
                errors_left = self.max_errors
            else:
                errors_left -= 1

            if errors_left <= 0:
                logger.error(
                    f"VAPIX listener for {self.address} stopped after {self.max_errors} consecutive failures"
                )
                return

            if self._stop.wait(self.retry_delay):
                return

    def listen_for_triggers(self) -> None:
        """
        Open the MJPEG stream and process parts until stopped or failed.

        Raises:
            ListenCancelled: stop signal observed between parts
            CameraAdapterError: connect, status, content type, or read failure
        """
        if self._stop.is_set():
            raise ListenCancelled()

        url = VAPIX_URL.format(address=self.address, fps=self.settings.axis_fps)
        response = self.client.get(url, stream=True)
        try:
            if response.status_code != 200:
                raise CameraTransportError(
                    f"status Error: {response.status_code}",
                    address=self.address,
                    status_code=response.status_code,
                )

            boundary = multipart_boundary(response.headers.get("Content-Type", ""))
            reader = MultipartStreamReader(response.iter_content(chunk_size=4096), boundary)

            codes = list(self.alarms)
            while True:
                if self._stop.is_set():
                    raise ListenCancelled()

                try:
                    part = reader.next_part()
                except EOFError as e:
                    raise CameraTransportError(f"listenForTriggers found EOF: {e}", address=self.address)
                except requests.exceptions.RequestException as e:
                    raise CameraTransportError(f"listenForTriggers: {e}", address=self.address) from e

                self._parts_received += 1
                trigger = parse_triggers(part, codes)
                if trigger is None:
                    continue

                value = self.handle_trigger(trigger)
                if value is not None:
                    self._send_event([value])
        finally:
            response.close()

    def handle_trigger(self, trigger: Trigger) -> Optional[CommandValue]:
        """Cache the trigger state; return a value only if it changed"""
        with self._state_lock:
            resource = self.alarms.get(trigger.alarm_code)
            if resource is None or self.alarm_states.get(trigger.alarm_code) == trigger.state:
                return None
            self.alarm_states[trigger.alarm_code] = trigger.state
        return CommandValue(resource.name, ValueType.BOOL, trigger.state)

    def get_alarm_state(self, alarm_code: str) -> bool:
        with self._state_lock:
            return self.alarm_states.get(alarm_code, False)

    def handle_read_command(self, req: CommandRequest) -> CommandValue:
        raise UnrecognizedCommandError("vapix", "read", req.device_resource_name)

    def handle_write_command(self, req: CommandRequest, param: CommandValue) -> None:
        raise UnrecognizedCommandError("vapix", "write", req.device_resource_name)
