import itertools
import logging
import time
from collections import deque
from datetime import datetime
from threading import Lock
from typing import Callable, Deque, Dict, List

from . import protocol
from .models import Command
from .registry import utcnow

log = logging.getLogger("queue")


class CommandIdGenerator:
    """Monotonic numeric ids, seeded from the start time in milliseconds.

    The seed keeps ids from a restarted process away from ids a device may
    still echo from the previous run; the counter makes them unique within
    the process.
    """

    def __init__(self, seed: int | None = None) -> None:
        if seed is None:
            seed = int(time.time() * 1000)
        self._counter = itertools.count(seed)
        self._lock = Lock()

    def __call__(self) -> str:
        with self._lock:
            return str(next(self._counter))


class CommandQueue:
    """Per-device FIFO of outbound commands.

    Each serial gets its own lock, so enqueue/dequeue on one device never
    waits on another device.
    """

    def __init__(
        self,
        dialect: protocol.CommandDialect,
        id_factory: Callable[[], str] | None = None,
        now_fn: Callable[[], datetime] = utcnow,
    ) -> None:
        self.dialect = dialect
        self._next_id = id_factory or CommandIdGenerator()
        self._now = now_fn
        self._queues: Dict[str, Deque[Command]] = {}
        self._locks: Dict[str, Lock] = {}
        self._guard = Lock()

    def _lock_for(self, serial: str) -> Lock:
        with self._guard:
            lock = self._locks.get(serial)
            if lock is None:
                lock = self._locks[serial] = Lock()
                self._queues[serial] = deque()
            return lock

    def enqueue(self, serial: str, payload: str) -> str:
        if not serial:
            raise ValueError("serial is required")
        command_id = self._next_id()
        command = Command(
            command_id=command_id,
            device_serial=serial,
            payload=payload,
            wire=protocol.encode_envelope(command_id, payload, self.dialect),
            enqueued_at=self._now(),
        )
        with self._lock_for(serial):
            self._queues[serial].append(command)
        log.info("Queued %s for %s: %s", command_id, serial, protocol.show_tabs(command.wire))
        return command_id

    def dequeue_one(
        self, serial: str | None, on_dequeue: Callable[[Command], Command] | None = None
    ) -> Command | None:
        """Pop the head of the queue.

        ``on_dequeue`` runs under the device lock, so whatever it records about
        the command is visible to any reader that no longer finds it queued.
        """
        if not serial or serial not in self._queues:
            return None
        with self._lock_for(serial):
            queue = self._queues[serial]
            if not queue:
                return None
            command = queue.popleft()
            return on_dequeue(command) if on_dequeue else command

    def clear(self, serial: str) -> int:
        if serial not in self._queues:
            return 0
        with self._lock_for(serial):
            queue = self._queues[serial]
            drained = len(queue)
            queue.clear()
        log.info("Cleared %d commands from %s", drained, serial)
        return drained

    def pending(self, serial: str) -> List[Command]:
        if serial not in self._queues:
            return []
        with self._lock_for(serial):
            return list(self._queues[serial])

    def status(self, serial: str) -> dict:
        commands = self.pending(serial)
        return {
            "device": serial,
            "queueLength": len(commands),
            "pendingCommands": [c.wire for c in commands],
        }

    def find(self, command_id: str) -> Command | None:
        for serial in self.serials():
            for command in self.pending(serial):
                if command.command_id == command_id:
                    return command
        return None

    def serials(self) -> List[str]:
        with self._guard:
            return list(self._queues)

    def lengths(self) -> Dict[str, int]:
        return {serial: len(self.pending(serial)) for serial in self.serials()}
