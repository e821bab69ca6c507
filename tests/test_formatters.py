"""Tests for message rendering."""

from datetime import datetime
from zoneinfo import ZoneInfo

from fullkoll.bot.formatters import format_amount, format_notification, render_message
from fullkoll.engine.schedule import ReminderMessage


def test_format_amount():
    assert format_amount(249.5) == "250"
    assert format_amount(249.4) == "249"
    assert format_amount(12499.0) == "12 499"
    assert format_amount(0.0) == "0"


def test_render_receipt_message():
    message = ReminderMessage(
        title_key="notify.receipt.title",
        body_key="notify.receipt.body_days",
        params={
            "store": "IKEA",
            "kind": "refund_deadline",
            "deadline": datetime(2026, 4, 30, 22, 30, tzinfo=ZoneInfo("UTC")),
            "offset_days": 7,
        },
    )

    title, body = render_message(message, tz="Europe/Stockholm")

    assert title == "Kvitto från IKEA"
    # 22:30 UTC is already May 1st in Stockholm
    assert body == "Sista dag för återbetalning om 7 dagar (2026-05-01)."


def test_render_unknown_kind_uses_raw_name():
    message = ReminderMessage(
        title_key="notify.receipt.title",
        body_key="notify.receipt.body_tomorrow",
        params={
            "store": "IKEA",
            "kind": "custom_deadline",
            "deadline": datetime(2026, 4, 30, tzinfo=ZoneInfo("UTC")),
        },
    )

    _, body = render_message(message)

    assert body == "Sista dag för custom_deadline är i morgon (2026-04-30)."


def test_format_notification_escapes_html():
    text = format_notification("Kvitto från H&M", "<b>snart</b>")

    assert "<b>Kvitto från H&amp;M</b>" in text
    assert "&lt;b&gt;snart&lt;/b&gt;" in text
