from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict

from .models import DeviceRecord


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeviceRegistry:
    """Last-seen bookkeeping per serial number.

    Entries are replaced on every contact and never evicted; "Online" only
    means "has contacted us at some point in this process".
    """

    def __init__(self, now_fn: Callable[[], datetime] = utcnow) -> None:
        self._devices: Dict[str, DeviceRecord] = {}
        self._lock = Lock()
        self._now = now_fn

    def touch(self, serial: str | None) -> DeviceRecord | None:
        if not serial:
            return None
        record = DeviceRecord(serial=serial, last_seen_at=self._now(), status="Online")
        with self._lock:
            self._devices[serial] = record
        return record

    def get(self, serial: str) -> DeviceRecord | None:
        with self._lock:
            return self._devices.get(serial)

    def snapshot(self) -> Dict[str, DeviceRecord]:
        with self._lock:
            return dict(self._devices)

    def __len__(self) -> int:
        return len(self._devices)
