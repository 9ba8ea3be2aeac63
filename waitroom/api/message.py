import re

from fastapi import APIRouter, Depends, HTTPException, Request

from waitroom.schemas.message import MessageIn, MessageOut
from waitroom.services.store import ContentStore, get_store

router = APIRouter(prefix="/message", tags=["message"])

MESSAGE_MAX_CHARS = 200
_TAG_RE = re.compile(r"<[^>]*>")


def strip_tags(value: str | None) -> str:
    return _TAG_RE.sub("", value or "").strip()


def client_info(request: Request) -> dict[str, str]:
    return {
        "ip": request.client.host if request.client else "unknown",
        "userAgent": request.headers.get("user-agent", "unknown"),
    }


@router.get("", response_model=MessageOut)
def read_message(store: ContentStore = Depends(get_store)):
    return store.load_message()


@router.post("")
def save_message(payload: MessageIn, request: Request, store: ContentStore = Depends(get_store)):
    text = strip_tags(payload.text)
    if len(text) > MESSAGE_MAX_CHARS:
        raise HTTPException(
            status_code=400,
            detail=f"Message must be {MESSAGE_MAX_CHARS} characters or less",
        )
    saved = store.save_message(text, payload.visible, client_info(request))
    return {"success": True, "message": saved}
