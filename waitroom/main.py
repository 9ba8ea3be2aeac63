import os
import logging
from datetime import datetime, timezone
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from waitroom.db import Base, engine
from waitroom.api import contents, display, message, playlist, settings, status
from waitroom.display.engine import DEFAULT_POLL_INTERVAL, DisplayEngine
from waitroom.display.gateway import LocalGateway
from waitroom.display.renderer import HubRenderer
from waitroom.models import play_cursor, status_log  # noqa: F401
from waitroom.services.realtime import hub
from waitroom.services.store import ContentStore

logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

SERVER_PORT = int(os.getenv("WAITROOM_SERVER_PORT", "8000"))
EMBEDDED_DISPLAY = os.getenv("WAITROOM_EMBEDDED_DISPLAY", "1").strip().lower() in {"1", "true", "yes", "on"}
MANUAL_TIPS = os.getenv("WAITROOM_MANUAL_TIPS", "0").strip().lower() in {"1", "true", "yes", "on"}
QUIET_ACCESS_LOG = os.getenv("WAITROOM_QUIET_ACCESS_LOG", "1").strip().lower() in {"1", "true", "yes", "on"}

if QUIET_ACCESS_LOG:
    # Keep warning/error lines, suppress normal access noise (200/201 etc).
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

app = FastAPI(title="waitroom")
app.state.display_engine = None
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def root():
    return {
        "ok": True,
        "service": "waitroom-api",
        "time_utc": datetime.now(timezone.utc).isoformat(),
        "docs": "/docs",
        "display": "/display",
    }


@app.get("/healthz")
def healthz():
    display_engine = app.state.display_engine
    return {
        "ok": True,
        "server_port": SERVER_PORT,
        "display": display_engine.state.value if display_engine else None,
        "realtime_clients": hub.client_count,
        "revision": hub.revision,
    }


@app.websocket("/ws/updates")
async def ws_updates(websocket: WebSocket):
    await hub.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(websocket)
    except Exception:
        await hub.disconnect(websocket)


@app.on_event("startup")
async def startup_events() -> None:
    if not EMBEDDED_DISPLAY or app.state.display_engine is not None:
        return
    store = ContentStore()
    store.ensure()
    renderer = HubRenderer(hub)
    display_engine = DisplayEngine(
        LocalGateway(store),
        renderer,
        poll_interval=DEFAULT_POLL_INTERVAL,
        manual_advance=MANUAL_TIPS,
    )
    hub.frame_source = renderer.surface.frame
    app.state.display_engine = display_engine
    if not await display_engine.init():
        logger.error("Embedded display failed to start; see the error panel")


@app.on_event("shutdown")
async def shutdown_events() -> None:
    display_engine = app.state.display_engine
    if display_engine is not None:
        display_engine.destroy()
        app.state.display_engine = None
    hub.frame_source = None


@app.middleware("http")
async def realtime_mutation_middleware(request: Request, call_next):
    response = await call_next(request)
    method = request.method.upper()
    path = request.url.path
    if response.status_code < 400 and method in {"POST", "PUT", "DELETE"}:
        watched_prefixes = ("/settings", "/message", "/status", "/playlist")
        # the cursor is written on every tick by remote kiosks
        if path.startswith(watched_prefixes) and not path.startswith("/playlist/cursor"):
            await hub.publish(
                "config_changed",
                {
                    "path": path,
                    "method": method,
                },
            )
    return response

app.include_router(settings.router)
app.include_router(message.router)
app.include_router(status.router)
app.include_router(contents.router)
app.include_router(playlist.router)
app.include_router(display.router)
