"""
Standalone kiosk player.

Runs the display engine against a remote waitroom server and prints every
region change to the log. In manual mode, type ``n`` (next item) or ``f``
(next file) followed by Enter.

    python -m waitroom.display.kiosk --server http://clinic-pc:8000 --kiosk lobby
"""

import argparse
import asyncio
import logging
import re
import signal
import sys
import threading

from waitroom.db import Base, SessionLocal, engine as db_engine
from waitroom.display.cursor import GatewayCursorStore, SqlCursorStore
from waitroom.display.engine import DEFAULT_POLL_INTERVAL, DisplayEngine
from waitroom.display.gateway import HttpGateway
from waitroom.display.renderer import SurfaceRenderer

logger = logging.getLogger("waitroom.kiosk")

_TAG_RE = re.compile(r"<[^>]+>")


class ConsoleRenderer(SurfaceRenderer):
    def _commit(self, name: str) -> None:
        region = self.surface.regions[name]
        if region.visible:
            logger.info("[%s] %s", name, _TAG_RE.sub(" ", region.html.replace("<br>", " / ")).strip())
        else:
            logger.info("[%s] (hidden)", name)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Waiting-room slideshow kiosk")
    parser.add_argument("--server", default="http://127.0.0.1:8000", help="Base URL of the waitroom server")
    parser.add_argument("--kiosk", default="default", help="Kiosk name, keys the local cursor row")
    parser.add_argument(
        "--local-cursor",
        action="store_true",
        help="Keep the play cursor in the local database instead of on the server",
    )
    parser.add_argument("--manual", action="store_true", help="Advance only on operator input")
    parser.add_argument("--poll-interval", type=float, default=DEFAULT_POLL_INTERVAL, help="Seconds between polls")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser


def _pump_lines(stream, loop: asyncio.AbstractEventLoop, lines: asyncio.Queue) -> None:
    try:
        for line in iter(stream.readline, ""):
            loop.call_soon_threadsafe(lines.put_nowait, line)
        loop.call_soon_threadsafe(lines.put_nowait, "")
    except RuntimeError:
        # loop already closed while this thread sat in readline
        return


async def _read_commands(engine: DisplayEngine, stream=None) -> None:
    # daemon thread: a blocked readline must not hold up interpreter exit
    loop = asyncio.get_running_loop()
    lines: asyncio.Queue = asyncio.Queue()
    threading.Thread(
        target=_pump_lines,
        args=(stream or sys.stdin, loop, lines),
        name="kiosk-stdin",
        daemon=True,
    ).start()
    while not engine.destroyed:
        line = await lines.get()
        if not line:
            return
        command = line.strip().lower()
        if command == "n":
            await engine.skip_to_next_item()
        elif command == "f":
            await engine.skip_to_next_file()
        elif command:
            logger.info("Unknown command %r (n = next item, f = next file)", command)


async def run(args: argparse.Namespace) -> int:
    gateway = HttpGateway(args.server)
    if args.local_cursor:
        Base.metadata.create_all(bind=db_engine)
        cursor_store = SqlCursorStore(SessionLocal, kiosk=args.kiosk)
    else:
        cursor_store = GatewayCursorStore(gateway)

    engine = DisplayEngine(
        gateway,
        ConsoleRenderer(),
        cursor_store=cursor_store,
        poll_interval=args.poll_interval,
        manual_advance=args.manual,
    )
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass

    try:
        if not await engine.init():
            return 1
        reader = asyncio.create_task(_read_commands(engine)) if args.manual else None
        await stop.wait()
        if reader is not None:
            reader.cancel()
    finally:
        engine.destroy()
        await gateway.close()
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
