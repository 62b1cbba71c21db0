"""Device-facing side of the push protocol, independent of the web framework.

Every method returns the exact plain-text body to send back. The protocol has
no way to tell a device that its upload was bad, so nothing here raises on
device input: the worst case is an ``OK`` for data that was ignored.
"""
import logging
import time
from typing import Any, Callable

from . import protocol
from .models import AttendanceRecord
from .store import GatewayStore

log = logging.getLogger("iclock")

OK = "OK\n"
REGISTRY_OK = "RegistryCode=OK\n"

ATTENDANCE_TABLES = {"ATTLOG", "rtlog"}
# accepted and counted, not decoded
PASSTHROUGH_TABLES = {"OPERLOG", "USERINFO", "ATTPHOTO", "rtstate"}


class DeviceHandlers:
    def __init__(self, store: GatewayStore, cfg: Any, clock: Callable[[], float] = time.time) -> None:
        self.store = store
        self.cfg = cfg
        self._clock = clock

    def registry(self, serial: str | None) -> str:
        self.store.registry.touch(serial)
        log.info("Registry request from %s", serial)
        return REGISTRY_OK

    def options(self, serial: str | None, mode: str | None) -> str:
        self.store.registry.touch(serial)
        if mode != "all":
            return OK
        log.info("Configuration request from %s", serial)
        stamp = int(self._clock())
        return protocol.encode_config_block(protocol.handshake_options(serial or "", self.cfg, stamp))

    def upload(self, serial: str | None, table: str | None, body: str | None) -> str:
        # OK: <n> counts non-blank lines only; blank lines between records are
        # not records. Pass-through tables are counted the same way.
        self.store.registry.touch(serial)
        if table in ATTENDANCE_TABLES:
            lines = protocol.split_lines(body)
            for fields in protocol.decode_attendance(body):
                record = AttendanceRecord.from_fields(fields)
                log.info("[%s] %s: user %s at %s", table, serial, record.pin, record.time)
            return f"OK: {len(lines)}\n"
        if table in PASSTHROUGH_TABLES:
            lines = protocol.split_lines(body)
            log.info("[%s] %s: %d lines", table, serial, len(lines))
            return f"OK: {len(lines)}\n"
        log.debug("Ignoring upload for table %r from %s", table, serial)
        return OK

    def poll(self, serial: str | None) -> str:
        self.store.registry.touch(serial)
        log.debug("Heartbeat from %s", serial)
        command = self.store.next_command(serial)
        if command is None:
            return OK
        log.info("Sending command to %s: %s", serial, protocol.show_tabs(command.wire))
        return command.wire + "\n"

    def result(self, serial: str | None, body: str | None) -> str:
        self.store.registry.touch(serial)
        self.store.correlator.record((body or "").strip(), serial=serial or "")
        return OK
