import asyncio
import io
import logging
import os
import time

import pytest
from fastapi.testclient import TestClient

from waitroom.display.kiosk import ConsoleRenderer, _read_commands, build_parser
from waitroom.main import app


def test_parser_defaults_and_flags():
    args = build_parser().parse_args([])
    assert args.server == "http://127.0.0.1:8000"
    assert args.kiosk == "default"
    assert args.local_cursor is False
    assert args.manual is False

    args = build_parser().parse_args(
        ["--server", "http://clinic:8000", "--kiosk", "lobby", "--local-cursor", "--manual", "--poll-interval", "2"]
    )
    assert (args.server, args.kiosk, args.local_cursor, args.manual, args.poll_interval) == (
        "http://clinic:8000",
        "lobby",
        True,
        True,
        2.0,
    )


def test_console_renderer_logs_plain_text(caplog):
    caplog.set_level(logging.INFO, logger="waitroom.kiosk")
    renderer = ConsoleRenderer()
    renderer.render_message({"text": "本日 <休診>", "visible": True})
    renderer.render_message({"text": "", "visible": False})
    assert "[messageArea] 本日 &lt;休診&gt;" in caplog.text
    assert "[messageArea] (hidden)" in caplog.text


def test_realtime_hello_on_connect():
    client = TestClient(app)
    with client.websocket_connect("/ws/updates") as websocket:
        hello = websocket.receive_json()
    assert hello["type"] == "hello"
    assert "revision" in hello


class CommandEngine:
    def __init__(self):
        self.destroyed = False
        self.calls = []

    async def skip_to_next_item(self):
        self.calls.append("item")

    async def skip_to_next_file(self):
        self.calls.append("file")


def test_operator_commands_drive_the_engine(caplog):
    caplog.set_level(logging.INFO, logger="waitroom.kiosk")
    engine = CommandEngine()

    asyncio.run(_read_commands(engine, io.StringIO("n\n F \nzz\n\nn\n")))

    assert engine.calls == ["item", "file", "item"]
    assert "Unknown command 'zz'" in caplog.text


def test_cancelled_reader_does_not_hold_up_shutdown():
    read_fd, write_fd = os.pipe()
    stream = os.fdopen(read_fd)
    engine = CommandEngine()

    async def scenario():
        reader = asyncio.create_task(_read_commands(engine, stream))
        await asyncio.sleep(0.05)
        reader.cancel()
        with pytest.raises(asyncio.CancelledError):
            await reader

    started = time.monotonic()
    try:
        asyncio.run(scenario())
        assert time.monotonic() - started < 2
    finally:
        os.close(write_fd)
