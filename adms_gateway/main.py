import logging
from datetime import datetime, timezone
from typing import List

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse

from . import protocol
from .handlers import DeviceHandlers
from .schemas import (
    ClearResponse, CommandResultOut, DeviceOut, EnqueueResponse, HealthOut,
    PendingCommandOut, QueueStatus, UserCreate, UserUpdate,
)
from .settings import Settings, settings
from .store import GatewayStore

log = logging.getLogger("gateway")

def _require(**values: str | None) -> None:
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing required fields: {', '.join(missing)}")

def _payload(build, *args) -> str:
    # values with tabs or line breaks would corrupt the device framing
    try:
        return build(*args)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

async def _text_body(request: Request) -> str:
    raw = await request.body()
    return raw.decode("utf-8", errors="replace")

def _plain(body: str) -> PlainTextResponse:
    return PlainTextResponse(body, media_type="text/plain")

def create_app(cfg: Settings | None = None, store: GatewayStore | None = None) -> FastAPI:
    cfg = cfg or settings
    if store is None:
        store = GatewayStore(dialect=protocol.get_dialect(cfg.command_dialect))
    devices = DeviceHandlers(store, cfg)

    app = FastAPI(title="ADMS Push Gateway", version="0.1.0")
    app.state.store = store

    @app.on_event("startup")
    async def on_startup():
        log.info("Command dialect: %s", store.dialect.name)
        log.info("State is kept in memory only; queued commands and results are lost on restart")

    # ---- device-facing (iclock) -------------------------------------------

    @app.post("/iclock/registry")
    def registry(SN: str | None = None):
        return _plain(devices.registry(SN))

    @app.get("/iclock/cdata")
    def cdata_options(SN: str | None = None, options: str | None = None):
        return _plain(devices.options(SN, options))

    @app.post("/iclock/cdata")
    async def cdata_upload(request: Request, SN: str | None = None, table: str | None = None):
        return _plain(devices.upload(SN, table, await _text_body(request)))

    @app.get("/iclock/getrequest")
    def getrequest(SN: str | None = None):
        return _plain(devices.poll(SN))

    @app.post("/iclock/getrequest")
    @app.post("/iclock/devicecmd")
    async def devicecmd(request: Request, SN: str | None = None):
        return _plain(devices.result(SN, await _text_body(request)))

    # ---- admin API ----------------------------------------------------------

    @app.post("/api/users", response_model=EnqueueResponse)
    def create_user(body: UserCreate):
        _require(sn=body.sn, pin=body.pin)
        fields = body.model_dump(exclude={"sn"})
        cmd_id = store.queue.enqueue(body.sn, _payload(protocol.user_upsert, fields, store.dialect))
        return EnqueueResponse(
            message=f"User {body.pin} creation queued", cmdId=cmd_id, pin=body.pin,
            data={k: fields[k] for k in ("pin", "name", "privilege", "card", "group")},
        )

    @app.put("/api/users/{pin}", response_model=EnqueueResponse)
    def update_user(pin: str, body: UserUpdate):
        _require(sn=body.sn, pin=pin)
        fields = body.model_dump(exclude={"sn"}, exclude_none=True)
        cmd_id = store.queue.enqueue(body.sn, _payload(protocol.user_upsert, {**fields, "pin": pin}, store.dialect))
        return EnqueueResponse(message=f"User {pin} update queued", cmdId=cmd_id, pin=pin, data=fields)

    @app.get("/api/users/{pin}", response_model=EnqueueResponse)
    def query_user(pin: str, sn: str | None = None):
        _require(sn=sn, pin=pin)
        cmd_id = store.queue.enqueue(sn, _payload(protocol.user_query, store.dialect, pin))
        return EnqueueResponse(message=f"Query for user {pin} queued", cmdId=cmd_id, pin=pin)

    @app.get("/api/users", response_model=EnqueueResponse)
    def query_users(sn: str | None = None):
        _require(sn=sn)
        cmd_id = store.queue.enqueue(sn, protocol.user_query(store.dialect))
        return EnqueueResponse(message="Query all users queued", cmdId=cmd_id)

    @app.delete("/api/users/{pin}", response_model=EnqueueResponse)
    def delete_user(pin: str, sn: str | None = None):
        _require(sn=sn, pin=pin)
        cmd_id = store.queue.enqueue(sn, _payload(protocol.user_delete, pin, store.dialect))
        return EnqueueResponse(message=f"User {pin} deletion queued", cmdId=cmd_id, pin=pin)

    @app.delete("/api/users", response_model=EnqueueResponse)
    def clear_users(sn: str | None = None):
        _require(sn=sn)
        cmd_id = store.queue.enqueue(sn, protocol.user_clear(store.dialect))
        return EnqueueResponse(message=f"Clear all users queued for {sn}", cmdId=cmd_id)

    @app.get("/api/command-result/{cmd_id}", response_model=CommandResultOut)
    def command_result(cmd_id: str):
        state, result, command = store.command_state(cmd_id)
        if result is not None:
            return CommandResultOut(
                success=result.success, cmdId=cmd_id, state=state,
                returnCode=result.return_code, cmdType=result.command_type, timestamp=result.received_at,
                message="Command executed successfully" if result.success
                else f"Command failed with code {result.return_code}",
            )
        return CommandResultOut(
            success=False, cmdId=cmd_id, state=state,
            deviceSerial=command.device_serial if command else None,
            message="Command result not yet received or command ID not found",
        )

    @app.get("/api/commands/unresolved", response_model=List[PendingCommandOut])
    def unresolved_commands(sn: str | None = None):
        return [
            PendingCommandOut(
                cmdId=c.command_id, device=c.device_serial, command=c.wire,
                enqueuedAt=c.enqueued_at, deliveredAt=c.delivered_at,
            )
            for c in store.correlator.unresolved(sn)
        ]

    @app.get("/api/queue", response_model=List[QueueStatus])
    def all_queues():
        return [QueueStatus(**store.queue.status(sn)) for sn in store.queue.serials()]

    @app.get("/api/queue/{sn}", response_model=QueueStatus)
    def queue_status(sn: str):
        return QueueStatus(**store.queue.status(sn))

    @app.delete("/api/queue/{sn}", response_model=ClearResponse)
    def clear_queue(sn: str):
        cleared = store.queue.clear(sn)
        return ClearResponse(cleared=cleared, message=f"Cleared {cleared} commands from queue")

    @app.get("/health", response_model=HealthOut)
    def health():
        return HealthOut(
            devices={
                sn: DeviceOut(lastSeen=d.last_seen_at, status=d.status)
                for sn, d in store.registry.snapshot().items()
            },
            queuedCommands=store.queue.lengths(),
            unresolvedCommands=len(store.correlator.unresolved()),
            timestamp=datetime.now(timezone.utc),
        )

    return app

def run():
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    app = create_app()
    log.info("Gateway listening on %s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())

if __name__ == "__main__":
    run()
