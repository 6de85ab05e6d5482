"""
Pytest configuration and fixtures for camera adapter tests.
"""

import pytest
import queue
import sys
from pathlib import Path

# Add backend to path for imports
backend_path = Path(__file__).parent.parent / "backend"
sys.path.insert(0, str(backend_path))

from config import Settings
from models import Device, DeviceProfile, DeviceResource
from services.host_service import HostService


@pytest.fixture
def fast_settings():
    """Settings with short timings so background loops finish quickly."""
    return Settings(
        credentials_retry_time=0,
        credentials_retry_wait=0,
        bosch_poll_interval_seconds=0.01,
        bosch_max_errors=3,
        axis_retry_delay_seconds=0.01,
        axis_max_errors=3,
    )


@pytest.fixture
def async_queue():
    """Queue vendor clients push AsyncValues onto."""
    return queue.Queue()


@pytest.fixture
def http_protocols():
    """Protocol block of a camera without authentication."""
    return {"HTTP": {"Address": "192.168.1.100"}}


@pytest.fixture
def digest_protocols():
    """Protocol block of a digest-authenticated camera."""
    return {
        "HTTP": {
            "Address": "192.168.1.101:8080",
            "AuthMethod": "digest",
            "CredentialPaths": "cam101",
        }
    }


@pytest.fixture
def bosch_profile():
    """Profile with one Bosch alarm watch and one counter watch."""
    return DeviceProfile(
        name="bosch-camera",
        labels=["camera", "Bosch"],
        device_resources=[
            DeviceResource(name="MotionAlarm", attributes={"alarm_type": "14"}),
            DeviceResource(name="DoorCounter", attributes={"counter_name": "Door"}),
            DeviceResource(name="onvif_users", attributes={}),
        ],
    )


@pytest.fixture
def axis_profile():
    """Profile with two Axis alarm codes."""
    return DeviceProfile(
        name="axis-camera",
        labels=["axis"],
        device_resources=[
            DeviceResource(name="AxisMotion", attributes={"alarm_code": "AA"}),
            DeviceResource(name="AxisTamper", attributes={"alarm_code": "BB"}),
        ],
    )


class FakeHost(HostService):
    """In-memory host framework."""

    def __init__(self, devices=None, profiles=None, secrets=None):
        self._devices = {d.name: d for d in devices or []}
        self._profiles = {p.name: p for p in profiles or []}
        self.secrets = secrets or {}
        self.secret_calls = 0

    def devices(self):
        return list(self._devices.values())

    def get_device_by_name(self, name):
        return self._devices[name]

    def get_profile_by_name(self, name):
        return self._profiles[name]

    def get_secret(self, path, *keys):
        self.secret_calls += 1
        secret = self.secrets[path]
        return {k: secret[k] for k in keys if k in secret}


@pytest.fixture
def fake_host():
    """Host knowing one plain ONVIF camera."""
    profile = DeviceProfile(name="onvif-camera", labels=["camera"])
    device = Device(
        name="cam-100",
        profile_name="onvif-camera",
        protocols={"HTTP": {"Address": "192.168.1.100"}},
    )
    return FakeHost(
        devices=[device],
        profiles=[profile],
        secrets={"cam101": {"username": "admin", "password": "secret"}},
    )


@pytest.fixture
def host_factory():
    """Build a FakeHost from devices, profiles and secrets."""
    return FakeHost
