from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse

from waitroom.display.engine import DisplayEngine

router = APIRouter(prefix="/display", tags=["display"])

_PAGE = """<!doctype html>
<html lang="ja">
<head>
<meta charset="utf-8">
<title>待合室表示</title>
<style>
body { margin: 0; background: #102030; color: #fff; font-family: sans-serif; }
.hidden { opacity: 0; transition: opacity .5s; }
.region { transition: opacity .5s; }
#categoryTitle { font-size: 2.4em; padding: .5em 1em; }
#mainContent { font-size: 2em; padding: 1em; }
#messageArea { position: fixed; bottom: 0; width: 100%; background: #c33; padding: .5em; }
#statusCard { position: fixed; right: 1em; top: 1em; width: 400px; height: 400px; background: #fff; color: #102030; }
</style>
</head>
<body>
<div id="categoryTitle" class="region"></div>
<div id="mainContent" class="region"></div>
<div id="messageArea" class="region"></div>
<div id="statusCard" class="region"></div>
<script>
function apply(name, region) {
  const el = document.getElementById(name);
  if (!el) return;
  const swap = () => {
    el.innerHTML = region.html;
    el.className = ["region"].concat(region.classes || [], region.visible ? [] : ["hidden"]).join(" ");
  };
  if (name === "mainContent" && el.innerHTML && region.visible) {
    el.classList.add("hidden");
    setTimeout(swap, 500);
  } else {
    swap();
  }
}
document.addEventListener("click", (event) => {
  const target = event.target.closest("[data-skip]");
  if (target) fetch("/display/skip?target=" + target.dataset.skip, { method: "POST" });
});
fetch("/display/frame").then((r) => r.json()).then((frame) => {
  Object.entries(frame).forEach(([name, region]) => apply(name, region));
});
function connect() {
  const ws = new WebSocket(location.origin.replace(/^http/, "ws") + "/ws/updates");
  ws.onmessage = (event) => {
    const message = JSON.parse(event.data);
    if (message.type === "frame") apply(message.payload.region, message.payload);
  };
  ws.onclose = () => setTimeout(connect, 3000);
}
connect();
</script>
</body>
</html>
"""


def get_engine(request: Request) -> DisplayEngine:
    engine = getattr(request.app.state, "display_engine", None)
    if engine is None or engine.destroyed:
        raise HTTPException(status_code=503, detail="Display engine is not running")
    return engine


@router.get("", response_class=HTMLResponse)
def display_page():
    return HTMLResponse(_PAGE)


@router.get("/plan")
def read_plan(engine: DisplayEngine = Depends(get_engine)):
    return engine.snapshot()


@router.get("/frame")
def read_frame(engine: DisplayEngine = Depends(get_engine)):
    surface = getattr(engine.renderer, "surface", None)
    if surface is None:
        raise HTTPException(status_code=503, detail="Display has no frame to report")
    return surface.frame()


@router.post("/skip")
async def skip(target: Literal["item", "file"] = "item", engine: DisplayEngine = Depends(get_engine)):
    if engine.suspended:
        raise HTTPException(status_code=409, detail="Tips are switched off")
    if target == "file":
        selection = await engine.skip_to_next_file()
    else:
        selection = await engine.skip_to_next_item()
    return {
        "success": selection is not None,
        "target": target,
        "showing": engine.snapshot()["showing"],
    }


@router.post("/reload")
async def reload(engine: DisplayEngine = Depends(get_engine)):
    await engine.reload_playlist()
    return {"success": True, "plan": engine.snapshot()["plan"]}
