# backend/services/host_service.py
"""
Interface to the host device framework.

The driver never owns device metadata or secrets; it asks the host for
them through this interface.
"""

from abc import ABC, abstractmethod
from typing import Dict, List

from models import Device, DeviceProfile


class HostService(ABC):
    """Device registry and secret store provided by the host"""

    @abstractmethod
    def devices(self) -> List[Device]:
        """All devices currently assigned to this driver"""
        pass

    @abstractmethod
    def get_device_by_name(self, name: str) -> Device:
        pass

    @abstractmethod
    def get_profile_by_name(self, name: str) -> DeviceProfile:
        pass

    @abstractmethod
    def get_secret(self, path: str, *keys: str) -> Dict[str, str]:
        """
        Read ``keys`` from the secret stored at ``path``.

        Raises any exception if the secret is not (yet) available.
        """
        pass
