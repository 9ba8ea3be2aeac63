from fastapi import APIRouter, Depends, HTTPException

from waitroom.services.store import ContentStore, build_shortcut_map, get_store

router = APIRouter(prefix="/contents", tags=["contents"])


@router.get("")
def list_contents(store: ContentStore = Depends(get_store)):
    available = store.available_contents()
    shortcuts = {filename: letter for letter, filename in build_shortcut_map(list(available)).items()}
    files = [{**info, "shortcut": shortcuts.get(filename)} for filename, info in sorted(available.items())]
    return {
        "files": files,
        "totalFiles": len(files),
        "totalItems": sum(info["itemCount"] for info in files),
    }


@router.get("/{filename}")
def read_content(filename: str, store: ContentStore = Depends(get_store)):
    try:
        return store.load_content(filename)
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=f"Content not found: {filename}") from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
