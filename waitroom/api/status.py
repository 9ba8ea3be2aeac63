import os

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from waitroom.api.message import client_info, strip_tags
from waitroom.db import get_db
from waitroom.models.status_log import StatusLog
from waitroom.schemas.status import LabelHistoryIn, RoomIn, StatusIn, StatusLogOut, StatusMessageIn
from waitroom.services.store import (
    DEFAULT_ROOM1_LABEL,
    DEFAULT_ROOM2_LABEL,
    LABEL_MAX_CHARS,
    ContentStore,
    get_store,
)

router = APIRouter(prefix="/status", tags=["status"])

STATUS_MODES = ("rooms", "message", "hidden")
STATUS_MESSAGE_MAX_CHARS = 30
STATUS_LOG_LIMIT = int(os.getenv("WAITROOM_STATUS_LOG_LIMIT", "50"))


def _normalize_room(room: RoomIn | None, default_label: str, field_name: str) -> dict:
    room = room or RoomIn()
    label = strip_tags(room.label)
    if len(label) > LABEL_MAX_CHARS:
        raise HTTPException(
            status_code=400,
            detail=f"{field_name}.label must be {LABEL_MAX_CHARS} characters or less",
        )
    return {"label": label or default_label, "number": room.number, "visible": room.visible}


def _normalize_status_message(value: StatusMessageIn | None, mode: str) -> dict:
    if mode != "message" or value is None:
        return {"text": "", "visible": False, "preset": None}
    return {
        "text": strip_tags(value.text)[:STATUS_MESSAGE_MAX_CHARS],
        "visible": value.visible,
        "preset": value.preset,
    }


def normalize_status(payload: StatusIn) -> dict:
    mode = payload.mode if payload.mode in STATUS_MODES else "rooms"
    return {
        "mode": mode,
        "room1": _normalize_room(payload.room1, DEFAULT_ROOM1_LABEL, "room1"),
        "room2": _normalize_room(payload.room2, DEFAULT_ROOM2_LABEL, "room2"),
        "statusMessage": _normalize_status_message(payload.statusMessage, mode),
    }


@router.get("")
def read_status(store: ContentStore = Depends(get_store)):
    return store.load_status()


@router.post("")
def save_status(
    payload: StatusIn,
    request: Request,
    store: ContentStore = Depends(get_store),
    db: Session = Depends(get_db),
):
    status = normalize_status(payload)
    client = client_info(request)
    saved = store.save_status(status, client)

    entry = StatusLog(
        mode=status["mode"],
        room1_label=status["room1"]["label"],
        room1_number=status["room1"]["number"],
        room1_visible=status["room1"]["visible"],
        room2_label=status["room2"]["label"],
        room2_number=status["room2"]["number"],
        room2_visible=status["room2"]["visible"],
        message_text=status["statusMessage"]["text"] or None,
        client_ip=client["ip"],
    )
    db.add(entry)
    db.commit()
    return {"success": True, "status": saved}


@router.get("/log", response_model=list[StatusLogOut])
def read_status_log(db: Session = Depends(get_db)):
    return (
        db.query(StatusLog)
        .order_by(StatusLog.created_at.desc())
        .limit(STATUS_LOG_LIMIT)
        .all()
    )


@router.get("/label-history")
def read_label_history(store: ContentStore = Depends(get_store)):
    history = store.load_label_history()
    return {"history": history, "count": len(history)}


@router.post("/label-history")
def save_label_history(payload: LabelHistoryIn, store: ContentStore = Depends(get_store)):
    history = store.save_label_history(payload.history)
    return {"success": True, "history": history, "count": len(history)}
