# backend/errors.py
"""
Camera Adapter Exception Hierarchy

Custom exceptions for the camera protocol clients and the driver, with
recovery hints so the host framework can report them without a debugger.
"""

from typing import Any, Dict, Optional


class CameraAdapterError(Exception):
    """Base exception for all camera adapter errors"""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
        recovery_hint: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable
        self.recovery_hint = recovery_hint

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "error": self.__class__.__name__,
            "message": self.message,
            "recoverable": self.recoverable,
        }
        if self.details:
            result["details"] = self.details
        if self.recovery_hint:
            result["recoveryHint"] = self.recovery_hint
        return result


# =============================================================================
# TRANSPORT ERRORS
# =============================================================================

class CameraTransportError(CameraAdapterError):
    """Network failure talking to a camera (connect, timeout, bad status)"""

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            details={"address": address, "statusCode": status_code, **(details or {})},
            recoverable=True,
            recovery_hint="Check that the camera is reachable and the credentials are correct"
        )
        self.address = address
        self.status_code = status_code


class OnvifConnectionError(CameraTransportError):
    """ONVIF device initialization handshake failed"""

    def __init__(self, address: str, reason: str):
        super().__init__(
            message=f"ONVIF client could not be initialized for {address}: {reason}",
            address=address,
        )


class OnvifRequestError(CameraTransportError):
    """An ONVIF SOAP operation failed"""

    def __init__(self, operation: str, address: str, reason: str):
        super().__init__(
            message=f"ONVIF {operation} failed for {address}: {reason}",
            address=address,
            details={"operation": operation},
        )
        self.operation = operation


class SnapshotStatusError(CameraTransportError):
    """Snapshot URI answered with a non-200 status"""

    def __init__(self, address: str, status_code: int):
        super().__init__(
            message=f"http request for image failed with status {status_code}",
            address=address,
            status_code=status_code,
        )


# =============================================================================
# PROTOCOL DECODE ERRORS
# =============================================================================

class ProtocolDecodeError(CameraAdapterError):
    """Camera answered with data that could not be decoded"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            details=details,
            recoverable=True,
            recovery_hint="The camera sent a malformed response; the message is skipped"
        )


class PacketDecodeError(ProtocolDecodeError):
    """Binary payload too short or not decodable"""

    def __init__(self, message: str, offset: int, length: int):
        super().__init__(
            message=message,
            details={"offset": offset, "length": length},
        )
        self.offset = offset
        self.length = length


class MarshalError(ProtocolDecodeError):
    """ONVIF response could not be serialized to JSON"""

    def __init__(self, operation: str, reason: str):
        super().__init__(
            message=f"error marshaling {operation} response to json: {reason}",
            details={"operation": operation},
        )


# =============================================================================
# CONFIGURATION / PRECONDITION ERRORS
# =============================================================================

class ConfigurationError(CameraAdapterError):
    """Device configuration is missing or invalid"""

    def __init__(
        self,
        message: str,
        setting: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            details={"setting": setting, **(details or {})},
            recoverable=False,
            recovery_hint="Check the device protocol properties and profile"
        )


class MissingProtocolError(ConfigurationError):
    """Device has no HTTP protocol block or no address in it"""

    def __init__(self, field: str):
        super().__init__(
            message=f"unable to load config, '{field}' not exist",
            setting=field,
        )


class DeviceNotFoundError(ConfigurationError):
    """Host framework does not know the device"""

    def __init__(self, device_name: str):
        super().__init__(
            message=f"device not found: {device_name}",
            details={"deviceName": device_name},
        )


class ProfileNotFoundError(ConfigurationError):
    """Host framework does not know the device profile"""

    def __init__(self, profile_name: str, device_name: Optional[str] = None):
        super().__init__(
            message=f"device profile not found: {profile_name}",
            details={"profileName": profile_name, "deviceName": device_name},
        )


class NoProfilesFoundError(ConfigurationError):
    """Camera exposes no ONVIF media profiles"""

    def __init__(self, address: str):
        super().__init__(
            message=f"no onvif profiles found for {address}",
            details={"address": address},
        )


class CredentialsError(ConfigurationError):
    """Credentials could not be resolved from the secret store"""

    def __init__(self, path: str, reason: str):
        super().__init__(
            message=f"failed to get credentials from '{path}': {reason}",
            setting="CredentialPaths",
            details={"path": path},
        )


# =============================================================================
# COMMAND ERRORS
# =============================================================================

class UnrecognizedCommandError(CameraAdapterError):
    """Resource name is not handled by this client"""

    def __init__(self, client: str, operation: str, resource: Optional[str] = None):
        super().__init__(
            message=f"{client}: unrecognized {operation} command",
            details={"resource": resource},
            recoverable=True,
            recovery_hint="The camera does not answer this resource"
        )
        self.client = client


class NoSecondaryClientError(CameraAdapterError):
    """Non-ONVIF resource requested for a camera with no vendor client"""

    def __init__(self, resource: str, address: Optional[str] = None):
        super().__init__(
            message="non-onvif command for camera without secondary client",
            details={"resource": resource, "address": address},
            recoverable=True,
            recovery_hint="Label the device profile with a supported vendor"
        )


class CommandValueError(CameraAdapterError):
    """Write parameter has the wrong type or malformed content"""

    def __init__(self, message: str, resource: Optional[str] = None):
        super().__init__(
            message=message,
            details={"resource": resource},
            recoverable=True,
            recovery_hint="Check the value sent with the write command"
        )
