# backend/services/client_registry.py
"""
Per-address client registry.

Holds the ONVIF client and the vendor client of every known camera. The
registry lock guards map membership only; construction of a client runs
under a per-address creation lock so concurrent first commands for the same
camera build exactly one instance.
"""

import logging
import queue
import threading
from typing import Callable, Dict, List, Optional, Tuple

from config import Settings
from integrations.axis_vapix_client import AxisVapixClient
from integrations.bosch_rcp_client import BoschRcpClient
from integrations.noop_client import NoopClient
from integrations.onvif_client import OnvifClient
from integrations.vendor_client import VendorClient, VendorKind
from models import AsyncValues

logger = logging.getLogger(__name__)


def new_vendor_client(
    kind: VendorKind,
    async_queue: "queue.Queue[AsyncValues]",
    settings: Optional[Settings] = None
) -> VendorClient:
    """Build an uninitialized vendor client for ``kind``"""
    if kind is VendorKind.BOSCH:
        return BoschRcpClient(async_queue, settings)
    if kind is VendorKind.AXIS:
        return AxisVapixClient(async_queue, settings)
    return NoopClient()


class ClientRegistry:
    """ONVIF and vendor clients keyed by camera address"""

    def __init__(self):
        self._lock = threading.Lock()
        self._onvif_clients: Dict[str, OnvifClient] = {}
        self._vendor_clients: Dict[str, VendorClient] = {}
        # Kept for the registry's lifetime so removal and creation always
        # serialize on the same lock object
        self._creation_locks: Dict[str, threading.Lock] = {}

    def _creation_lock(self, address: str) -> threading.Lock:
        with self._lock:
            return self._creation_locks.setdefault(address, threading.Lock())

    def get_onvif_client(self, address: str) -> Optional[OnvifClient]:
        with self._lock:
            return self._onvif_clients.get(address)

    def get_vendor_client(self, address: str) -> Optional[VendorClient]:
        with self._lock:
            return self._vendor_clients.get(address)

    def get_or_create_clients(
        self,
        address: str,
        onvif_factory: Callable[[], OnvifClient],
        vendor_factory: Callable[[], VendorClient]
    ) -> Tuple[OnvifClient, VendorClient]:
        """
        Return the ONVIF and vendor client for ``address``, building
        whichever is missing.

        Both are built under the address's creation lock, so concurrent
        callers share one instance and remove() waits for construction to
        finish. A factory error stores nothing for that client.
        """
        with self._lock:
            onvif = self._onvif_clients.get(address)
            vendor = self._vendor_clients.get(address)
        if onvif is not None and vendor is not None:
            return onvif, vendor

        with self._creation_lock(address):
            # Another caller may have finished while we waited
            with self._lock:
                onvif = self._onvif_clients.get(address)
                vendor = self._vendor_clients.get(address)

            if onvif is None:
                onvif = self._store(self._onvif_clients, address, onvif_factory())
            if vendor is None:
                vendor = self._store(self._vendor_clients, address, vendor_factory())
            return onvif, vendor

    def _store(self, clients: Dict, address: str, client):
        with self._lock:
            stored = clients.setdefault(address, client)
        if stored is client:
            logger.debug(f"Registered {type(client).__name__} for {address}")
        return stored

    def remove(self, address: str) -> Tuple[Optional[OnvifClient], Optional[VendorClient]]:
        """
        Drop both clients of ``address`` and return them.

        Waits for any construction in progress for the address, so a client
        being built is returned here rather than registered afterwards.
        """
        with self._creation_lock(address):
            with self._lock:
                return (
                    self._onvif_clients.pop(address, None),
                    self._vendor_clients.pop(address, None),
                )

    def clear(self) -> Tuple[List[OnvifClient], List[VendorClient]]:
        """Drop every client and return them"""
        with self._lock:
            onvif_clients = list(self._onvif_clients.values())
            vendor_clients = list(self._vendor_clients.values())
            self._onvif_clients.clear()
            self._vendor_clients.clear()
        return onvif_clients, vendor_clients
