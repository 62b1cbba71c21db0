from typing import Literal
from datetime import datetime
from pydantic import BaseModel, Field, computed_field

from . import protocol

DeviceStatus = Literal["Online", "Unknown"]
CommandState = Literal["queued", "delivered", "resolved", "unknown"]

class DeviceRecord(BaseModel):
    serial: str
    last_seen_at: datetime
    status: DeviceStatus = "Online"

class Command(BaseModel):
    command_id: str
    device_serial: str
    payload: str          # instruction body, without the C:<id>: envelope
    wire: str             # exactly what the device receives, minus the newline
    enqueued_at: datetime
    delivered_at: datetime | None = None

class CommandResult(BaseModel):
    command_id: str
    return_code: int
    command_type: str
    received_at: datetime

    @computed_field
    @property
    def success(self) -> bool:
        return self.return_code == 0

class AttendanceRecord(BaseModel):
    pin: str = protocol.PLACEHOLDER
    time: str = protocol.PLACEHOLDER
    timestamp: datetime | None = None
    fields: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_fields(cls, fields: dict[str, str]) -> "AttendanceRecord":
        time = protocol.field_value(fields, "time")
        return cls(
            pin=protocol.field_value(fields, "pin"),
            time=time,
            timestamp=protocol.parse_event_time(time),
            fields=fields,
        )

