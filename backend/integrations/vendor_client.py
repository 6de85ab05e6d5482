# backend/integrations/vendor_client.py
"""
Abstract base class for vendor-specific camera clients.

Every camera gets exactly one vendor client, chosen once from its profile
labels. Vendor clients answer the resources ONVIF does not cover and may run
a background thread that pushes events onto the driver's queue.
"""

import logging
import queue
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Iterable, List, Optional

from config import Settings, get_settings
from models import (
    AsyncValues,
    CommandRequest,
    CommandValue,
    Device,
    DeviceProfile,
)

logger = logging.getLogger(__name__)


class VendorKind(str, Enum):
    """Vendor protocols a camera can speak besides ONVIF"""
    BOSCH = "bosch"
    AXIS = "axis"
    NONE = "none"

    @classmethod
    def from_labels(cls, labels: Iterable[str]) -> "VendorKind":
        """Pick the vendor from profile labels; Bosch is checked before Axis"""
        normalized = {label.strip().lower() for label in labels or []}
        for kind in (cls.BOSCH, cls.AXIS):
            if kind.value in normalized:
                return kind
        return cls.NONE


class ClientState(str, Enum):
    """Lifecycle of a vendor client's background task"""
    UNINITIALIZED = "uninitialized"
    POLLING = "polling"
    LISTENING = "listening"
    STOPPED = "stopped"


class VendorClient(ABC):
    """
    Interface every vendor client implements.

    camera_init and camera_release bracket the client's lifetime;
    handle_read_command / handle_write_command serve the resources the
    driver could not route to ONVIF.
    """

    kind: VendorKind = VendorKind.NONE

    @abstractmethod
    def camera_init(
        self,
        device: Device,
        profile: DeviceProfile,
        address: str,
        username: str,
        password: str
    ) -> None:
        pass

    @abstractmethod
    def handle_read_command(self, req: CommandRequest) -> CommandValue:
        pass

    @abstractmethod
    def handle_write_command(self, req: CommandRequest, param: CommandValue) -> None:
        pass

    @abstractmethod
    def camera_release(self, force: bool = False) -> None:
        pass


class BackgroundVendorClient(VendorClient):
    """
    Vendor client driven by one background thread.

    ``_stop`` is set once to request shutdown; ``_stopped`` is set once by
    the thread when it exits. State maps are guarded by ``_state_lock`` since
    the thread writes them while command reads come from host threads.
    """

    running_state = ClientState.POLLING

    def __init__(self, async_queue: "queue.Queue[AsyncValues]", settings: Optional[Settings] = None):
        self.async_queue = async_queue
        self.settings = settings or get_settings()

        self.device_name = ""
        self.address = ""
        self.state = ClientState.UNINITIALIZED

        self._state_lock = threading.Lock()
        self._stop = threading.Event()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def _start(self, target: Callable[[], None]) -> None:
        def run():
            try:
                target()
            except Exception:
                logger.exception(f"{self.kind.value} background task for {self.address} crashed")
            finally:
                self.state = ClientState.STOPPED
                self._stopped.set()

        self.state = self.running_state
        self._thread = threading.Thread(
            target=run,
            name=f"{self.kind.value}-{self.address}",
            daemon=True,
        )
        self._thread.start()

    def camera_release(self, force: bool = False) -> None:
        """
        Ask the background task to stop.

        Unless ``force`` is set, block until the task has exited.
        """
        if self._thread is None:
            self.state = ClientState.STOPPED
            return

        self._stop.set()
        if not force:
            self._stopped.wait()
        logger.info(f"{self.kind.value} client for {self.address} released (force={force})")

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        return self._stopped.wait(timeout)

    def _send_event(self, values: List[CommandValue]) -> None:
        self.async_queue.put(AsyncValues(device_name=self.device_name, command_values=values))
