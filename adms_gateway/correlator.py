import logging
from datetime import datetime
from threading import Lock
from typing import Callable, Dict, List

from . import protocol
from .models import Command, CommandResult
from .registry import utcnow

log = logging.getLogger("correlator")


class ResultCorrelator:
    """Matches device result reports back to the command ids that caused them.

    Also remembers commands that were handed to a device and have not been
    answered yet, so callers can see what is outstanding. Nothing here
    retries or expires; an unanswered command stays outstanding until the
    process exits.
    """

    def __init__(self, now_fn: Callable[[], datetime] = utcnow) -> None:
        self._results: Dict[str, CommandResult] = {}
        self._delivered: Dict[str, Command] = {}
        self._lock = Lock()
        self._now = now_fn

    def mark_delivered(self, command: Command) -> Command:
        command = command.model_copy(update={"delivered_at": self._now()})
        with self._lock:
            self._delivered[command.command_id] = command
        return command

    def record(self, report_text: str | None, serial: str = "") -> List[CommandResult]:
        reports = protocol.parse_result_reports(report_text)
        if not reports:
            log.warning("No command result found in report from %s: %r", serial or "?", report_text)
            return []

        now = self._now()
        results = []
        for report in reports:
            result = CommandResult(
                command_id=report.command_id,
                return_code=report.return_code,
                command_type=report.command_type,
                received_at=now,
            )
            with self._lock:
                # last write wins
                self._results[result.command_id] = result
                self._delivered.pop(result.command_id, None)
            if result.success:
                log.info("Command %s executed successfully", result.command_id)
            else:
                log.warning("Command %s failed with code %d", result.command_id, result.return_code)
            results.append(result)
        return results

    def lookup(self, command_id: str) -> CommandResult | None:
        with self._lock:
            return self._results.get(command_id)

    def delivered(self, command_id: str) -> Command | None:
        with self._lock:
            return self._delivered.get(command_id)

    def unresolved(self, serial: str | None = None) -> List[Command]:
        with self._lock:
            commands = list(self._delivered.values())
        if serial:
            commands = [c for c in commands if c.device_serial == serial]
        return sorted(commands, key=lambda c: c.delivered_at or c.enqueued_at)
