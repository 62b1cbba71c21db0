from datetime import datetime
from pydantic import BaseModel, ConfigDict
from typing import Any

# Required fields are nullable here and checked in the routes, so a missing
# sn/pin gets a 400 with a readable message instead of a 422.

class UserCreate(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    sn: str | None = None
    pin: str | None = None
    name: str = ""
    privilege: str = "0"
    password: str = ""
    card: str = ""
    group: str = "1"
    timezone: str = "0000000000000000"
    verify: str | None = None

class UserUpdate(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    sn: str | None = None
    name: str | None = None
    privilege: str | None = None
    password: str | None = None
    card: str | None = None
    group: str | None = None
    timezone: str | None = None
    verify: str | None = None

class EnqueueResponse(BaseModel):
    success: bool = True
    message: str
    cmdId: str
    pin: str | None = None
    data: dict[str, Any] = {}

class CommandResultOut(BaseModel):
    success: bool
    cmdId: str
    state: str
    message: str
    returnCode: int | None = None
    cmdType: str | None = None
    timestamp: datetime | None = None
    deviceSerial: str | None = None

class PendingCommandOut(BaseModel):
    cmdId: str
    device: str
    command: str
    enqueuedAt: datetime
    deliveredAt: datetime | None = None

class QueueStatus(BaseModel):
    device: str
    queueLength: int
    pendingCommands: list[str]

class ClearResponse(BaseModel):
    success: bool = True
    cleared: int
    message: str

class DeviceOut(BaseModel):
    lastSeen: datetime
    status: str

class HealthOut(BaseModel):
    devices: dict[str, DeviceOut]
    queuedCommands: dict[str, int]
    unresolvedCommands: int
    timestamp: datetime
