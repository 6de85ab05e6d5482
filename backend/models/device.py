# backend/models/device.py
"""
Device Data Models for the camera adapter

Defines the structures exchanged with the host framework: devices,
profiles, command requests/values and asynchronous event batches.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from errors import CommandValueError, ConfigurationError, MissingProtocolError


# Protocol property keys
HTTP_PROTOCOL = "HTTP"
ADDRESS = "Address"
AUTH_METHOD = "AuthMethod"
CREDENTIAL_PATHS = "CredentialPaths"

UINT32_MAX = 0xFFFFFFFF


def now_ms() -> int:
    """Current time in milliseconds since the epoch"""
    return time.time_ns() // 1_000_000


# =============================================================================
# ENUMS
# =============================================================================

class ValueType(str, Enum):
    """Types a command value can carry"""
    BOOL = "Bool"
    STRING = "String"
    UINT32 = "Uint32"
    BINARY = "Binary"


class AuthMethod(str, Enum):
    """How a camera expects HTTP requests to be authenticated"""
    NONE = "none"
    BASIC = "basic"
    DIGEST = "digest"
    USERNAME_PASSWORD = "usernamepassword"  # legacy spelling of digest

    @classmethod
    def from_string(cls, value: Optional[str]) -> "AuthMethod":
        """Parse auth method, case-insensitive; empty means none"""
        if not value:
            return cls.NONE
        normalized = value.strip().lower()
        for method in cls:
            if method.value == normalized:
                return method
        raise ValueError(f"unsupported auth method: {value}")

    @property
    def requires_credentials(self) -> bool:
        return self is not AuthMethod.NONE

    @property
    def is_digest(self) -> bool:
        return self in (AuthMethod.DIGEST, AuthMethod.USERNAME_PASSWORD)


# =============================================================================
# DEVICE MODELS
# =============================================================================

@dataclass
class DeviceResource:
    """A named point of data or control exposed by a device profile"""
    name: str
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DeviceProfile:
    """Profile shared by devices of one camera model"""
    name: str
    labels: List[str] = field(default_factory=list)
    device_resources: List[DeviceResource] = field(default_factory=list)


@dataclass
class Device:
    """Device registered with the host framework"""
    name: str
    profile_name: str
    protocols: Dict[str, Dict[str, str]] = field(default_factory=dict)


@dataclass
class CameraInfo:
    """HTTP protocol properties of a camera"""
    address: str
    auth_method: AuthMethod = AuthMethod.NONE
    credential_paths: str = ""

    @classmethod
    def from_protocols(cls, protocols: Dict[str, Dict[str, str]]) -> "CameraInfo":
        """
        Build camera info from the device's protocol properties.

        Raises:
            MissingProtocolError: HTTP protocol, address, or (for
                authenticated cameras) credential path missing
            ConfigurationError: unsupported auth method
        """
        protocol = protocols.get(HTTP_PROTOCOL) if protocols else None
        if protocol is None:
            raise MissingProtocolError(HTTP_PROTOCOL)

        address = protocol.get(ADDRESS)
        if not address:
            raise MissingProtocolError(ADDRESS)

        try:
            auth_method = AuthMethod.from_string(protocol.get(AUTH_METHOD))
        except ValueError as e:
            raise ConfigurationError(str(e), setting=AUTH_METHOD)

        credential_paths = protocol.get(CREDENTIAL_PATHS, "")
        if auth_method.requires_credentials and not credential_paths:
            raise MissingProtocolError(CREDENTIAL_PATHS)

        return cls(
            address=address,
            auth_method=auth_method,
            credential_paths=credential_paths,
        )


def address_from_protocols(protocols: Dict[str, Dict[str, str]]) -> str:
    """Return the camera address from the HTTP protocol block"""
    protocol = protocols.get(HTTP_PROTOCOL) if protocols else None
    if protocol is None or not protocol.get(ADDRESS):
        raise MissingProtocolError(ADDRESS)
    return protocol[ADDRESS]


# =============================================================================
# COMMAND MODELS
# =============================================================================

@dataclass
class CommandRequest:
    """Read or write request for one device resource"""
    device_resource_name: str
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CommandValue:
    """Typed value read from or written to a device resource"""
    device_resource_name: str
    value_type: ValueType
    value: Any
    origin: int = field(default_factory=now_ms)

    def __post_init__(self):
        if not _value_matches(self.value_type, self.value):
            raise CommandValueError(
                f"value {self.value!r} is not a valid {self.value_type.value}",
                resource=self.device_resource_name,
            )

    def bool_value(self) -> bool:
        if self.value_type is not ValueType.BOOL:
            raise CommandValueError(
                f"{self.device_resource_name} does not hold a Bool value",
                resource=self.device_resource_name,
            )
        return self.value

    def string_value(self) -> str:
        if self.value_type is not ValueType.STRING:
            raise CommandValueError(
                f"{self.device_resource_name} does not hold a String value",
                resource=self.device_resource_name,
            )
        return self.value

    def to_dict(self) -> Dict[str, Any]:
        value = self.value.hex() if self.value_type is ValueType.BINARY else self.value
        return {
            "deviceResourceName": self.device_resource_name,
            "valueType": self.value_type.value,
            "value": value,
            "origin": self.origin,
        }


def _value_matches(value_type: ValueType, value: Any) -> bool:
    if value_type is ValueType.BOOL:
        return isinstance(value, bool)
    if value_type is ValueType.STRING:
        return isinstance(value, str)
    if value_type is ValueType.UINT32:
        return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= UINT32_MAX
    if value_type is ValueType.BINARY:
        return isinstance(value, (bytes, bytearray))
    return False


@dataclass
class AsyncValues:
    """Batch of values pushed upstream for one device"""
    device_name: str
    command_values: List[CommandValue] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deviceName": self.device_name,
            "commandValues": [cv.to_dict() for cv in self.command_values],
        }
