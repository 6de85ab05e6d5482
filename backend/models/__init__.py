"""
Camera Adapter Data Models

Dataclasses shared by the protocol clients and the driver, plus the
Pydantic models that validate structured write parameters.
"""

from .device import (
    # Protocol keys
    HTTP_PROTOCOL,
    ADDRESS,
    AUTH_METHOD,
    CREDENTIAL_PATHS,

    # Enums
    ValueType,
    AuthMethod,

    # Device models
    DeviceResource,
    DeviceProfile,
    Device,
    CameraInfo,
    address_from_protocols,

    # Command models
    CommandRequest,
    CommandValue,
    AsyncValues,
)

from .onvif_params import (
    OnvifUserParams,
    OnvifDateTimeParams,
    params_from_value,
)

__all__ = [
    "HTTP_PROTOCOL",
    "ADDRESS",
    "AUTH_METHOD",
    "CREDENTIAL_PATHS",
    "ValueType",
    "AuthMethod",
    "DeviceResource",
    "DeviceProfile",
    "Device",
    "CameraInfo",
    "address_from_protocols",
    "CommandRequest",
    "CommandValue",
    "AsyncValues",
    "OnvifUserParams",
    "OnvifDateTimeParams",
    "params_from_value",
]
