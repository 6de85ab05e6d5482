# backend/integrations/bosch_rcp_client.py
"""
Bosch RCP (Remote Control Protocol) Client

Polls Bosch cameras for alarm and IVA counter events:
- Combined "alarm overview" + "IVA counter values" query every tick
- XML message list with hex-encoded binary payloads
- Binary alarm / counter record decoding
- Per-alarm and per-counter state, with change events pushed upstream

RCP Information:
- Endpoint: http://<camera>/rcp.xml?message=<cmd>$<cmd>&collectms=<ms>
- Authentication: HTTP Digest
- Analytics events must already be configured on the camera
"""

import binascii
import logging
import queue
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, List, Optional
from xml.etree import ElementTree as ET

from config import Settings
from errors import (
    CameraAdapterError,
    CameraTransportError,
    CommandValueError,
    ConfigurationError,
    PacketDecodeError,
    ProtocolDecodeError,
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
from .packet_reader import PacketReader
from .vendor_client import BackgroundVendorClient, ClientState, VendorKind

logger = logging.getLogger(__name__)

# Command identifiers from the Bosch RCP documentation
CONF_ALARM_OVERVIEW = "0x0c38"
CONF_IVA_COUNTER_VALUES = "0x0b4a"

ALARM_ADD_FLAG = 0x80
ALARM_DELETE_FLAG = 0x40
ALARM_STATE_FLAG = 0x20
ALARM_STATE_SET_FLAG = 0x10
ALARM_READOUT_FLAG = 0x80

ALARM_HEADER_SIZE = 4
ALARM_ENTRY_HEADER_SIZE = 8
COUNTER_RECORD_SIZE = 70
COUNTER_NAME_SIZE = 64

ALARM_TYPE_ATTRIBUTE = "alarm_type"
COUNTER_NAME_ATTRIBUTE = "counter_name"

RCP_URL = "http://{address}/rcp.xml?{action}={command}"


class AlarmType(IntEnum):
    """Alarm types reported in the alarm overview"""
    UNKNOWN = 0
    VCA = 1
    RELAIS = 2
    DIGITAL_INPUT = 3
    AUDIO = 4
    VIRTUAL_INPUT = 5
    DEFAULT_TASK = 16
    GLOBAL_CHANGE = 17
    SIGNAL_TOO_BRIGHT = 18
    SIGNAL_TOO_DARK = 19
    REFERENCE_IMAGE_CHECK_FAILED = 23
    INVALID_CONFIGURATION = 24
    FLAME_DETECTED = 25
    SMOKE_DETECTED = 26
    OBJECT_IN_FIELD = 32
    CROSSING_LINE = 33
    LOITERING = 34
    CONDITION_CHANGE = 35
    FOLLOWING_ROUTE = 36
    TAMPERING = 37
    REMOVED_OBJECT = 38
    IDLE_OBJECT = 39
    ENTERING_FIELD = 40
    LEAVING_FIELD = 41
    SIMILARITY_SEARCH = 42
    CROWD_DETECTION = 43
    FLOW_IN_FIELD = 44
    COUNTER_FLOW_IN_FIELD = 45
    MOTION_IN_FIELD = 46
    MAN_OVERBOARD = 47
    COUNTER = 48
    BEV_PEOPLE_COUNTER = 49
    OCCUPANCY = 50


@dataclass
class Alarm:
    """One entry of an alarm overview payload"""
    entry_id: int
    entry_length: int
    flag_add: bool
    flag_delete: bool
    flag_state: bool
    flag_state_set: bool
    alarm_source: int
    alarm_type: int
    alarm_name: str


@dataclass
class CounterData:
    """One IVA counter record"""
    id: int
    type: int
    name: str
    value: int


@dataclass
class RcpMessage:
    """One <msg> of an RCP message list"""
    command: str
    num: str = ""
    cltid: str = ""
    hex: str = ""


# =============================================================================
# PAYLOAD DECODING
# =============================================================================

def parse_alarms(payload: bytes) -> List[Alarm]:
    """
    Decode an alarm overview payload.

    When the readout flag (bit 7 of byte 0) is set the payload is a
    snapshot and only active (state-flagged) entries are returned.

    Raises:
        PacketDecodeError: truncated payload or entry
    """
    packet = PacketReader(payload)
    readout = (packet.byte(0) & ALARM_READOUT_FLAG) != 0

    alarms = []
    i = ALARM_HEADER_SIZE
    while i < len(packet):
        entry_length = packet.uint16(i + 2)
        if entry_length < ALARM_ENTRY_HEADER_SIZE:
            raise PacketDecodeError(
                f"alarm entry at offset {i} has invalid length {entry_length}",
                offset=i,
                length=len(packet),
            )

        flags = packet.byte(i + 4)
        alarm = Alarm(
            entry_id=packet.uint16(i),
            entry_length=entry_length,
            flag_add=(flags & ALARM_ADD_FLAG) != 0,
            flag_delete=(flags & ALARM_DELETE_FLAG) != 0,
            flag_state=(flags & ALARM_STATE_FLAG) != 0,
            flag_state_set=(flags & ALARM_STATE_SET_FLAG) != 0,
            alarm_source=packet.byte(i + 6),
            alarm_type=packet.byte(i + 7),
            alarm_name=packet.utf16_string(i + ALARM_ENTRY_HEADER_SIZE, entry_length - ALARM_ENTRY_HEADER_SIZE),
        )
        i += entry_length

        if not readout or alarm.flag_state:
            alarms.append(alarm)

    return alarms


def parse_counters(payload: bytes) -> List[CounterData]:
    """
    Decode an IVA counter payload: one header byte, then fixed 70-byte
    records (id, type, 64-byte UTF-16BE name, uint32 value).

    Raises:
        PacketDecodeError: empty payload or trailing partial record
    """
    if not payload:
        raise PacketDecodeError("empty counter payload", offset=0, length=0)

    packet = PacketReader(payload[1:])

    counters = []
    for i in range(0, len(packet), COUNTER_RECORD_SIZE):
        counters.append(CounterData(
            id=packet.byte(i),
            type=packet.byte(i + 1),
            name=packet.utf16_string(i + 2, COUNTER_NAME_SIZE).rstrip("\x00"),
            value=packet.uint32(i + 2 + COUNTER_NAME_SIZE),
        ))
    return counters


def parse_message_list(document: bytes) -> List[RcpMessage]:
    """
    Parse an RCP <message_list> response.

    Raises:
        ProtocolDecodeError: not XML, or not a message list
    """
    try:
        root = ET.fromstring(document)
    except ET.ParseError as e:
        raise ProtocolDecodeError(f"error unmarshaling RCP response: {e}")

    if root.tag != "message_list":
        raise ProtocolDecodeError(f"unexpected RCP response root <{root.tag}>")

    return [
        RcpMessage(
            command=(msg.findtext("command") or "").strip(),
            num=(msg.findtext("num") or "").strip(),
            cltid=(msg.findtext("cltid") or "").strip(),
            hex=(msg.findtext("hex") or "").strip(),
        )
        for msg in root.findall("msg")
    ]


def decode_hex_payload(value: str) -> bytes:
    """Decode a 0x-prefixed hex string"""
    if value[:2].lower() == "0x":
        value = value[2:]
    try:
        return binascii.unhexlify(value)
    except (binascii.Error, ValueError) as e:
        raise ProtocolDecodeError(f"error decoding RCP payload: {e}")


def rcp_url(address: str, action: str, command: str, params: Optional[Dict[str, str]] = None) -> str:
    """Build an rcp.xml URL; params are appended in insertion order"""
    if not address or not action or not command:
        raise ConfigurationError("rcp_url failed: required argument missing")

    url = RCP_URL.format(address=address, action=action, command=command)
    if params:
        url += "&" + "&".join(f"{key}={value}" for key, value in params.items())
    return url


# =============================================================================
# CLIENT
# =============================================================================

class BoschRcpClient(BackgroundVendorClient):
    """
    Client for Bosch analytics events via the RCP API.

    States: UNINITIALIZED -> POLLING (camera_init) -> STOPPED
    (camera_release, or error budget exhausted).
    """

    kind = VendorKind.BOSCH
    running_state = ClientState.POLLING

    def __init__(
        self,
        async_queue: "queue.Queue[AsyncValues]",
        settings: Optional[Settings] = None,
        client: Optional[DigestClient] = None
    ):
        super().__init__(async_queue, settings)
        self.client = client

        self.alarms: Dict[int, DeviceResource] = {}
        self.counters: Dict[str, DeviceResource] = {}
        self.alarm_states: Dict[int, bool] = {}
        self.counter_states: Dict[str, int] = {}

        self.poll_interval = self.settings.bosch_poll_interval_seconds
        self.max_errors = self.settings.bosch_max_errors

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
                timeout=self.settings.camera_http_timeout_seconds,
            )

        self.device_name = device.name
        self.address = address
        self.register_watches(profile.device_resources)

        logger.info(
            f"Starting RCP polling for {device.name} at {address} "
            f"({len(self.alarms)} alarms, {len(self.counters)} counters)"
        )
        self._start(self._poll_loop)

    def register_watches(self, resources: List[DeviceResource]) -> None:
        """Register alarm_type / counter_name resources and reset their state"""
        with self._state_lock:
            for resource in resources:
                alarm_type = resource.attributes.get(ALARM_TYPE_ATTRIBUTE)
                if alarm_type is not None:
                    try:
                        alarm_type = int(alarm_type)
                    except (TypeError, ValueError):
                        logger.warning(f"Ignoring resource {resource.name}: bad alarm_type {alarm_type!r}")
                        continue
                    self.alarms[alarm_type] = resource
                    self.alarm_states[alarm_type] = False
                    continue

                counter_name = resource.attributes.get(COUNTER_NAME_ATTRIBUTE)
                if counter_name:
                    self.counters[counter_name] = resource
                    self.counter_states[counter_name] = 0

    def _poll_loop(self) -> None:
        errors_left = self.max_errors
        while errors_left > 0:
            if self._stop.wait(self.poll_interval):
                return
            try:
                self.request_events()
            except CameraAdapterError as e:
                errors_left -= 1
                logger.error(f"Error in RCP loop for {self.address}: {e}")
            else:
                errors_left = self.max_errors

        logger.error(
            f"RCP polling for {self.address} stopped after {self.max_errors} consecutive failures"
        )

    def request_events(self) -> None:
        """Run one poll: query, decode every message, push changed values"""
        url = rcp_url(
            self.address,
            "message",
            f"{CONF_ALARM_OVERVIEW}${CONF_IVA_COUNTER_VALUES}",
            {"collectms": str(self.settings.bosch_collect_ms)},
        )
        messages = parse_message_list(self._get_xml(url))

        for msg in messages:
            command = msg.command.lower()
            try:
                payload = decode_hex_payload(msg.hex)
                if command == CONF_ALARM_OVERVIEW:
                    values = self.apply_alarms(parse_alarms(payload))
                elif command == CONF_IVA_COUNTER_VALUES:
                    values = self.apply_counters(parse_counters(payload))
                else:
                    logger.warning(f"Unknown command type in RCP message: {msg.command}")
                    continue
            except ProtocolDecodeError as e:
                logger.error(f"Skipping RCP message {msg.command} from {self.address}: {e}")
                continue

            if values:
                self._send_event(values)

    def _get_xml(self, url: str) -> bytes:
        response = self.client.get(url)
        try:
            if response.status_code != 200:
                raise CameraTransportError(
                    f"status Error: {response.status_code}",
                    address=self.address,
                    status_code=response.status_code,
                )
            return response.content
        finally:
            response.close()

    def apply_alarms(self, alarms: List[Alarm]) -> List[CommandValue]:
        """Update watched alarm states; return values for those that changed"""
        values = []
        with self._state_lock:
            for alarm in alarms:
                resource = self.alarms.get(alarm.alarm_type)
                if resource is None:
                    continue
                if self.alarm_states.get(alarm.alarm_type) == alarm.flag_state:
                    continue
                self.alarm_states[alarm.alarm_type] = alarm.flag_state
                values.append(CommandValue(resource.name, ValueType.BOOL, alarm.flag_state))
        return values

    def apply_counters(self, counters: List[CounterData]) -> List[CommandValue]:
        """Update watched counter states; return values for those that changed"""
        values = []
        with self._state_lock:
            for counter in counters:
                resource = self.counters.get(counter.name)
                if resource is None:
                    continue
                if self.counter_states.get(counter.name) == counter.value:
                    continue
                self.counter_states[counter.name] = counter.value
                values.append(CommandValue(resource.name, ValueType.UINT32, counter.value))
        return values

    def get_alarm_state(self, alarm_type: int) -> bool:
        with self._state_lock:
            return self.alarm_states.get(alarm_type, False)

    def get_counter_state(self, counter_name: str) -> int:
        with self._state_lock:
            return self.counter_states.get(counter_name, 0)

    def handle_read_command(self, req: CommandRequest) -> CommandValue:
        if ALARM_TYPE_ATTRIBUTE in req.attributes:
            try:
                alarm_type = int(req.attributes[ALARM_TYPE_ATTRIBUTE])
            except (TypeError, ValueError):
                raise CommandValueError(
                    f"rcp: invalid alarm_type {req.attributes[ALARM_TYPE_ATTRIBUTE]!r}",
                    resource=req.device_resource_name,
                )
            return CommandValue(req.device_resource_name, ValueType.BOOL, self.get_alarm_state(alarm_type))

        if COUNTER_NAME_ATTRIBUTE in req.attributes:
            counter_name = req.attributes[COUNTER_NAME_ATTRIBUTE]
            return CommandValue(req.device_resource_name, ValueType.UINT32, self.get_counter_state(counter_name))

        raise UnrecognizedCommandError("rcp", "read", req.device_resource_name)

    def handle_write_command(self, req: CommandRequest, param: CommandValue) -> None:
        raise UnrecognizedCommandError("rcp", "write", req.device_resource_name)
