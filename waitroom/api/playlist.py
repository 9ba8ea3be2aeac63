from fastapi import APIRouter, Depends, HTTPException, Request

from waitroom.api.message import client_info
from waitroom.schemas.playlist import CursorIn, PlaylistIn
from waitroom.services.store import ContentStore, get_store

router = APIRouter(prefix="/playlist", tags=["playlist"])


@router.get("")
def read_playlist(store: ContentStore = Depends(get_store)):
    return store.playlist_status()


@router.post("")
def save_playlist(payload: PlaylistIn, request: Request, store: ContentStore = Depends(get_store)):
    try:
        saved = store.save_playlist(payload.playlistString, client_info(request))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        "success": True,
        "playlist": saved["playlist"],
        "playlistString": saved["playlistString"],
        "totalFiles": saved["totalFiles"],
        "totalItems": saved["totalItems"],
    }


@router.post("/cursor")
def save_cursor(payload: CursorIn, store: ContentStore = Depends(get_store)):
    try:
        store.save_cursor(payload.currentPlaylistIndex, payload.currentFileIndex)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        "success": True,
        "currentPlaylistIndex": payload.currentPlaylistIndex,
        "currentFileIndex": payload.currentFileIndex,
    }


@router.post("/cursor/reset")
def reset_cursor(store: ContentStore = Depends(get_store)):
    store.save_cursor(0, 0)
    return {"success": True, "currentPlaylistIndex": 0, "currentFileIndex": 0}
