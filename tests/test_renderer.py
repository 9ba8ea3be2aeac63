import pytest

from waitroom.display.plan import ContentFile, PlanKind, Selection
from waitroom.display.renderer import (
    CATEGORY_TITLE,
    MAIN_CONTENT,
    MESSAGE_AREA,
    STATUS_CARD,
    DisplaySurface,
    Region,
    RendererError,
    SurfaceRenderer,
)


def selection_for(item, meta=None):
    content = ContentFile("tips.json", meta or {}, [item])
    return Selection("tips.json", 0, item, content, meta or {"title": "tips"}, PlanKind.QUEUE)


def test_missing_region_fails_check():
    surface = DisplaySurface(regions={CATEGORY_TITLE: Region(), MAIN_CONTENT: Region()})
    with pytest.raises(RendererError):
        SurfaceRenderer(surface).check()


def test_item_text_is_escaped_and_tagged_for_skips():
    renderer = SurfaceRenderer()
    renderer.show_item(selection_for({"icon": "🩹", "title": "<script>", "text": "a & b"}))

    main = renderer.surface.regions[MAIN_CONTENT]
    assert main.visible
    assert "<script>" not in main.html
    assert "&lt;script&gt;" in main.html
    assert "a &amp; b" in main.html
    assert 'data-skip="file"' in main.html
    assert 'data-skip="item"' in main.html


def test_long_item_title_widens_the_card():
    renderer = SurfaceRenderer()
    renderer.show_item(selection_for({"title": "インフルエンザ予防接種の受付期間と対象年齢について"}))
    main = renderer.surface.regions[MAIN_CONTENT]
    assert "wide-card" in main.classes
    assert "long-title" in main.html


def test_manual_advance_marks_the_card():
    renderer = SurfaceRenderer()
    renderer.show_item(selection_for({"title": "x"}), manual_advance=True)
    assert "manual-advance" in renderer.surface.regions[MAIN_CONTENT].classes


def test_category_title_uses_meta_or_system_title():
    renderer = SurfaceRenderer()
    renderer.update_title({"icon": "🍎", "title": "健康"})
    assert renderer.surface.regions[CATEGORY_TITLE].html == "🍎 健康"
    renderer.update_title(None)
    assert "待合室表示システム" in renderer.surface.regions[CATEGORY_TITLE].html


def test_hidden_message_hides_the_banner():
    renderer = SurfaceRenderer()
    renderer.render_message({"text": "休診のお知らせ", "visible": True})
    assert renderer.surface.regions[MESSAGE_AREA].visible
    renderer.render_message({"text": "休診のお知らせ", "visible": False})
    assert not renderer.surface.regions[MESSAGE_AREA].visible


def test_status_message_is_split_into_lines():
    renderer = SurfaceRenderer(DisplaySurface(status_width=440, status_height=460))
    renderer.render_status(
        {
            "mode": "message",
            "statusMessage": {"text": "ただいま診察室が大変混み合っております。しばらくお待ちください", "visible": True},
        }
    )
    card = renderer.surface.regions[STATUS_CARD]
    assert card.visible
    assert "message-mode" in card.classes
    assert "lines-2" in card.html
    assert "vertical-message-line line-2" in card.html


def test_rooms_render_only_visible_called_numbers():
    renderer = SurfaceRenderer()
    renderer.render_status(
        {
            "mode": "rooms",
            "room1": {"label": "第1診察室", "number": 12, "visible": True},
            "room2": {"label": "小児科", "number": 0, "visible": True},
        }
    )
    card = renderer.surface.regions[STATUS_CARD]
    assert card.visible
    assert card.html.count('class="room-info"') == 1
    assert "room-label-tight" in card.html


def test_no_visible_room_hides_the_card():
    renderer = SurfaceRenderer()
    renderer.render_status({"mode": "rooms", "room1": {"number": 3, "visible": False}})
    assert not renderer.surface.regions[STATUS_CARD].visible
    renderer.render_status({"mode": "hidden"})
    assert not renderer.surface.regions[STATUS_CARD].visible


def test_error_panel():
    renderer = SurfaceRenderer()
    renderer.show_error("初期化に失敗しました")
    main = renderer.surface.regions[MAIN_CONTENT]
    assert main.classes == ["error"]
    assert "初期化に失敗しました" in main.html
