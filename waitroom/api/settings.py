from fastapi import APIRouter, Depends, HTTPException

from waitroom.schemas.settings import DisplayModeIn, SettingsIn
from waitroom.services.store import ContentStore, get_store, validate_content_filename

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("")
def read_settings(store: ContentStore = Depends(get_store)):
    return store.load_settings()


@router.post("")
def save_settings(payload: SettingsIn, store: ContentStore = Depends(get_store)):
    changes = payload.model_dump(exclude_none=True)
    if "files" in changes:
        for filename in changes["files"]:
            try:
                validate_content_filename(filename)
            except ValueError as exc:
                raise HTTPException(status_code=400, detail=str(exc)) from exc
        for file_settings in changes["files"].values():
            display_name = file_settings.get("displayName")
            if display_name is not None:
                display_name = display_name.strip()
                if len(display_name) > 50:
                    raise HTTPException(status_code=400, detail="displayName must be 50 characters or less")
                file_settings["displayName"] = display_name
    if not changes:
        raise HTTPException(status_code=400, detail="No settings to update")
    return {"success": True, "settings": store.save_settings(changes)}


@router.post("/display-mode")
def save_display_mode(payload: DisplayModeIn, store: ContentStore = Depends(get_store)):
    try:
        settings = store.save_display_mode(payload.filename, payload.displayMode)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        "success": True,
        "filename": payload.filename,
        "displayMode": payload.displayMode,
        "settings": settings,
    }
