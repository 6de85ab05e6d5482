# backend/integrations/noop_client.py
"""Vendor client for cameras that only speak ONVIF."""

from errors import UnrecognizedCommandError
from models import CommandRequest, CommandValue, Device, DeviceProfile

from .vendor_client import VendorClient, VendorKind


class NoopClient(VendorClient):
    """Answers every vendor command with an unrecognized-command error"""

    kind = VendorKind.NONE

    def camera_init(
        self,
        device: Device,
        profile: DeviceProfile,
        address: str,
        username: str,
        password: str
    ) -> None:
        return None

    def handle_read_command(self, req: CommandRequest) -> CommandValue:
        raise UnrecognizedCommandError("camera-adapter", "read", req.device_resource_name)

    def handle_write_command(self, req: CommandRequest, param: CommandValue) -> None:
        raise UnrecognizedCommandError("camera-adapter", "write", req.device_resource_name)

    def camera_release(self, force: bool = False) -> None:
        return None
