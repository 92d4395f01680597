"""Telegram slot message rendering and callback data."""

import pytest

from bot.session import ChatSession
from bot.slot_view import escape_md, parse_slot_callback, render_slot, slot_callback
from mockupgen.codec import to_data_uri
from mockupgen.errors import ErrorKind, RateLimitedError
from mockupgen.prompts import MockupCategory
from mockupgen.slots import ResultSlot, SlotStatus


def _buttons(view):
    return [b for row in view.keyboard.inline_keyboard for b in row]


def test_loading_slot_shows_creating_without_buttons():
    slot = ResultSlot(identity=3, position=0, status=SlotStatus.LOADING)

    view = render_slot(slot, MockupCategory.MUG)

    assert "Creating…" in view.text
    assert "Mockup 1" in view.text
    assert view.keyboard is None
    assert not view.is_photo


def test_failed_slot_shows_message_and_retry():
    slot = ResultSlot(identity=5, position=2).with_error(
        RateLimitedError.user_message, ErrorKind.RATE_LIMITED
    )

    view = render_slot(slot)

    assert escape_md(RateLimitedError.user_message) in view.text
    (retry,) = _buttons(view)
    assert retry.text.endswith("Retry")
    assert retry.callback_data == "slot:redo:2:5"


def test_succeeded_slot_is_a_photo_with_actions():
    slot = ResultSlot(identity=9, position=3, status=SlotStatus.SUCCEEDED,
                      image=to_data_uri(b"png-bytes"))

    view = render_slot(slot, MockupCategory.TOTE_BAG)

    assert view.is_photo
    assert view.photo == b"png-bytes"
    data = [b.callback_data for b in _buttons(view)]
    assert data == [
        "slot:redo:3:9",
        "slot:open:3:9",
        "slot:dl:3:9:HD",
        "slot:dl:3:9:FullHD",
        "slot:dl:3:9:4K",
    ]


def test_callback_round_trip():
    slot = ResultSlot(identity=12, position=1)

    assert parse_slot_callback(slot_callback("dl", slot, "FullHD")) == ("dl", 1, 12, "FullHD")
    assert parse_slot_callback(slot_callback("open", slot)) == ("open", 1, 12, None)


@pytest.mark.parametrize(
    "data",
    ["", "cat_mug", "slot:redo:x:1", "slot:delete:1:1", "slot:dl:1:1:8K", "slot:dl:1:1"],
)
def test_malformed_callbacks_are_rejected(data):
    assert parse_slot_callback(data) is None


def test_escape_md():
    assert escape_md("T-Shirt (v2).") == "T\\-Shirt \\(v2\\)\\."


def test_session_readiness_and_summary():
    session = ChatSession()
    assert not session.is_ready()
    assert not session.is_generating

    session.source_image = to_data_uri(b"logo")
    session.category = MockupCategory.HOODIE
    assert session.is_ready()

    lines = session.summary_lines()
    assert "Hoodie" in lines[1]
    assert "Professional, clean, realistic lighting" in lines[2]
