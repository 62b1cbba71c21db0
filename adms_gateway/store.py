from datetime import datetime
from typing import Callable

from . import protocol
from .command_queue import CommandQueue
from .correlator import ResultCorrelator
from .models import Command, CommandResult, CommandState
from .registry import DeviceRegistry, utcnow


class GatewayStore:
    """All gateway state for one process: registry, queues and results.

    Memory only; a restart loses every device, queued command and result.
    """

    def __init__(
        self,
        dialect: protocol.CommandDialect | None = None,
        now_fn: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.dialect = dialect or protocol.DIALECTS["push"]
        self.registry = DeviceRegistry(now_fn=now_fn)
        self.queue = CommandQueue(self.dialect, id_factory=id_factory, now_fn=now_fn)
        self.correlator = ResultCorrelator(now_fn=now_fn)

    def next_command(self, serial: str | None) -> Command | None:
        return self.queue.dequeue_one(serial, on_dequeue=self.correlator.mark_delivered)

    def command_state(self, command_id: str) -> tuple[CommandState, CommandResult | None, Command | None]:
        # checked in lifecycle order; each hand-off is atomic, so a live id is
        # always found in the stage it is in or a later one
        command = self.queue.find(command_id)
        if command is not None:
            return "queued", None, command
        command = self.correlator.delivered(command_id)
        if command is not None:
            return "delivered", None, command
        result = self.correlator.lookup(command_id)
        if result is not None:
            return "resolved", result, None
        return "unknown", None, None
