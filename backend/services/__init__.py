# backend/services/__init__.py
"""
Camera adapter services

Driver entry points, the per-address client registry and credential lookup.
"""

from .camera_driver import CameraDriver, ONVIF_READ_COMMANDS
from .client_registry import ClientRegistry, new_vendor_client
from .credentials import CredentialProvider
from .host_service import HostService

__all__ = [
    # Driver
    "CameraDriver",
    "ONVIF_READ_COMMANDS",
    # Clients
    "ClientRegistry",
    "new_vendor_client",
    # Host
    "CredentialProvider",
    "HostService",
]
