import asyncio

from waitroom.display.engine import INIT_ERROR_MESSAGE, EngineState
from waitroom.display.plan import PlayCursor
from waitroom.display.renderer import MAIN_CONTENT, STATUS_CARD
from waitroom.display.scheduler import DISPLAY_TIMER, HIDE_TIMER, POLL_TIMER


def order_file(items, count, prefix="tip"):
    return {"meta": {"title": prefix, "icon": "📄", "displayMode": "order"}, "items": items(prefix, count)}


def test_first_tick_renders_persists_and_arms_timers(make_gateway, make_engine, renderer, scheduler, items):
    gateway = make_gateway(contents={"tips.json": order_file(items, 3)})
    engine = make_engine(gateway, poll_interval=5)

    async def scenario():
        assert await engine.init() is True
        assert renderer.shown == [("tips.json", 0)]
        assert gateway.cursor_writes == [PlayCursor(0, 1)]
        assert engine.state == EngineState.SHOWING
        assert scheduler.active() == [DISPLAY_TIMER, HIDE_TIMER, POLL_TIMER]
        assert scheduler.due_in(DISPLAY_TIMER) == 20
        assert scheduler.due_in(HIDE_TIMER) == 8

        await scheduler.advance(8)
        assert engine.state == EngineState.HIDDEN
        assert not renderer.surface.regions[MAIN_CONTENT].visible

        await scheduler.advance(12)
        assert renderer.shown == [("tips.json", 0), ("tips.json", 1)]

    asyncio.run(scenario())


def test_destroy_twice_leaves_no_timers(make_gateway, make_engine, scheduler, items):
    engine = make_engine(make_gateway(contents={"tips.json": order_file(items, 2)}))

    async def scenario():
        await engine.init()
        engine.destroy()
        engine.destroy()
        assert scheduler.active() == []
        assert engine.state == EngineState.DESTROYED
        assert await engine.show_next() is None

    asyncio.run(scenario())


def test_missing_region_shows_error_panel_without_timers(make_gateway, make_engine, renderer, scheduler, items):
    del renderer.surface.regions[STATUS_CARD]
    engine = make_engine(make_gateway(contents={"tips.json": order_file(items, 2)}))

    async def scenario():
        assert await engine.init() is False

    asyncio.run(scenario())
    assert renderer.errors == [INIT_ERROR_MESSAGE]
    assert renderer.shown == []
    assert scheduler.active() == []
    assert engine.state == EngineState.ERROR


def test_no_content_shows_fallback_and_keeps_polling(make_gateway, make_engine, renderer, scheduler):
    engine = make_engine(make_gateway(), poll_interval=5)

    async def scenario():
        assert await engine.init() is True

    asyncio.run(scenario())
    assert renderer.fallbacks == 1
    assert scheduler.active() == [POLL_TIMER]
    assert engine.state == EngineState.IDLE


def test_settings_fetch_failure_falls_back_to_defaults(make_gateway, make_engine, renderer, scheduler, items):
    gateway = make_gateway(
        contents={"tips.json": order_file(items, 3)},
        settings={"interval": 90, "duration": 30, "showTips": True},
    )
    gateway.fail.add("settings")
    engine = make_engine(gateway, poll_interval=5)

    async def scenario():
        await engine.init()
        assert engine.settings["interval"] == 20
        assert engine.settings["duration"] == 8
        assert engine.settings["showTips"] is True
        assert scheduler.due_in(DISPLAY_TIMER) == 20

        await scheduler.advance(40)
        assert len(renderer.shown) == 3

    asyncio.run(scenario())


def test_cursor_write_failure_does_not_stop_playback(make_gateway, make_engine, renderer, scheduler, items):
    gateway = make_gateway(contents={"tips.json": order_file(items, 3)})
    gateway.fail.add("save_cursor")
    engine = make_engine(gateway, poll_interval=5)

    async def scenario():
        await engine.init()
        await scheduler.advance(20)

    asyncio.run(scenario())
    assert renderer.shown == [("tips.json", 0), ("tips.json", 1)]
    assert gateway.cursor_writes == []


def test_show_tips_off_suspends_and_resumes_from_same_cursor(make_gateway, make_engine, renderer, scheduler, items):
    gateway = make_gateway(contents={"tips.json": order_file(items, 3)})
    engine = make_engine(gateway, poll_interval=5)

    async def scenario():
        await engine.init()
        assert renderer.shown == [("tips.json", 0)]

        gateway.settings["showTips"] = False
        await scheduler.advance(5)
        assert not scheduler.is_armed(DISPLAY_TIMER)
        assert not scheduler.is_armed(HIDE_TIMER)
        assert engine.suspended

        await scheduler.advance(100)
        assert renderer.shown == [("tips.json", 0)]

        gateway.settings["showTips"] = True
        await scheduler.advance(5)
        assert renderer.shown == [("tips.json", 0), ("tips.json", 1)]
        assert scheduler.is_armed(DISPLAY_TIMER)

    asyncio.run(scenario())


def test_interval_change_rearms_without_rebuilding(make_gateway, make_engine, scheduler, items):
    gateway = make_gateway(contents={"tips.json": order_file(items, 3)})
    engine = make_engine(gateway, poll_interval=5)

    async def scenario():
        await engine.init()
        plan = engine.plan

        gateway.settings["interval"] = 40
        await scheduler.advance(5)
        assert scheduler.due_in(DISPLAY_TIMER) == 40
        assert engine.plan is plan
        assert engine.plan.queue_pos == 1

    asyncio.run(scenario())


def test_cursor_round_trip_across_reload(make_gateway, make_engine, renderer, scheduler, items, playlist_of):
    gateway = make_gateway(
        contents={"a.json": order_file(items, 2, "a"), "b.json": order_file(items, 2, "b")},
        playlist=playlist_of(("a.json", 2), ("b.json", 2)),
    )

    async def scenario():
        first = make_engine(gateway, poll_interval=5)
        await first.init()
        await scheduler.advance(40)
        assert renderer.shown == [("a.json", 0), ("a.json", 1), ("b.json", 0)]
        first.destroy()

        second = make_engine(gateway, poll_interval=5)
        await second.init()
        assert renderer.shown[-1] == ("b.json", 1)

    asyncio.run(scenario())


def test_external_cursor_change_is_adopted(make_gateway, make_engine, renderer, scheduler, items, playlist_of):
    gateway = make_gateway(
        contents={"a.json": order_file(items, 2, "a"), "b.json": order_file(items, 2, "b")},
        playlist=playlist_of(("a.json", 2), ("b.json", 2)),
    )
    engine = make_engine(gateway, poll_interval=5)

    async def scenario():
        await engine.init()
        gateway.playlist.update({"currentPlaylistIndex": 1, "currentFileIndex": 1})
        await scheduler.advance(5)
        assert engine.plan.cursor == PlayCursor(1, 1)

        await scheduler.advance(15)
        assert renderer.shown[-1] == ("b.json", 1)

    asyncio.run(scenario())


def test_poll_ignores_cursor_read_that_raced_a_tick(make_gateway, make_engine, renderer, items, playlist_of):
    class SlowCursorGateway(make_gateway):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            self.release = None

        async def fetch_cursor(self):
            cursor = await super().fetch_cursor()
            if self.release is not None:
                await self.release.wait()
            return cursor

    gateway = SlowCursorGateway(
        contents={"a.json": order_file(items, 3, "a")},
        playlist=playlist_of(("a.json", 3)),
    )
    engine = make_engine(gateway, poll_interval=5)

    async def scenario():
        await engine.init()
        gateway.release = asyncio.Event()
        poll = asyncio.create_task(engine.poll())
        for _ in range(5):
            await asyncio.sleep(0)

        await engine.show_next()
        gateway.release.set()
        await poll
        assert engine.plan.cursor == PlayCursor(0, 2)

        await engine.show_next()

    asyncio.run(scenario())
    assert renderer.shown == [("a.json", 0), ("a.json", 1), ("a.json", 2)]


def test_playlist_edit_rebuilds_plan(make_gateway, make_engine, renderer, scheduler, items, playlist_of):
    gateway = make_gateway(
        contents={"a.json": order_file(items, 2, "a"), "b.json": order_file(items, 2, "b")},
        playlist=playlist_of(("a.json", 2)),
    )
    engine = make_engine(gateway, poll_interval=5)

    async def scenario():
        await engine.init()
        gateway.playlist = playlist_of(("b.json", 2))
        await scheduler.advance(5)
        assert renderer.shown[-1] == ("b.json", 0)
        assert [entry.filename for entry in engine.plan.playlist] == ["b.json"]

    asyncio.run(scenario())


def test_unreachable_playlist_file_is_skipped(make_gateway, make_engine, renderer, items, playlist_of):
    gateway = make_gateway(
        contents={"a.json": order_file(items, 1, "a")},
        playlist=playlist_of(("gone.json", 3), ("a.json", 1)),
    )
    engine = make_engine(gateway)

    async def scenario():
        await engine.init()

    asyncio.run(scenario())
    assert renderer.shown == [("a.json", 0)]


def test_manual_mode_only_advances_on_skip(make_gateway, make_engine, renderer, scheduler, items, playlist_of):
    gateway = make_gateway(
        contents={"a.json": order_file(items, 3, "a"), "b.json": order_file(items, 1, "b")},
        playlist=playlist_of(("a.json", 3), ("b.json", 1)),
    )
    engine = make_engine(gateway, poll_interval=5, manual_advance=True)

    async def scenario():
        await engine.init()
        assert scheduler.active() == [POLL_TIMER]

        await scheduler.advance(60)
        assert renderer.shown == [("a.json", 0)]

        await engine.skip_to_next_item()
        assert renderer.shown[-1] == ("a.json", 1)

        await engine.skip_to_next_file()
        assert renderer.shown[-1] == ("b.json", 0)
        assert "manual-advance" in renderer.surface.regions[MAIN_CONTENT].classes

    asyncio.run(scenario())


def test_snapshot_reports_plan_and_timers(make_gateway, make_engine, items):
    engine = make_engine(make_gateway(contents={"tips.json": order_file(items, 2)}), poll_interval=5)

    async def scenario():
        await engine.init()

    asyncio.run(scenario())
    snapshot = engine.snapshot()
    assert snapshot["state"] == "showing"
    assert snapshot["plan"]["kind"] == "queue"
    assert snapshot["showing"]["filename"] == "tips.json"
    assert snapshot["timing"] == {"waitTime": 20, "displayTime": 8}
    assert POLL_TIMER in snapshot["timers"]
