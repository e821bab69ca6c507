"""Message text formatters.

The engine emits template keys and raw parameters; this module turns them
into the Swedish text users see.
"""

import html
import math
from datetime import datetime

from fullkoll.engine.schedule import ReminderMessage
from fullkoll.utils.time_utils import format_date

TEMPLATES = {
    "notify.receipt.title": "Kvitto från {store}",
    "notify.receipt.body_tomorrow": "Sista dag för {deadline_label} är i morgon ({deadline}).",
    "notify.receipt.body_days": "Sista dag för {deadline_label} om {offset_days} dagar ({deadline}).",
    "notify.giftcard.title": "Ditt presentkort för {brand} går ut snart!",
    "notify.giftcard.body": "Saldo: {balance} kr, gäller till {deadline}.",
    "notify.autogiro.title_tomorrow": "Påminnelse: {service_name} dras i morgon.",
    "notify.autogiro.title_date": "Autogiro: {service_name} dras {deadline}.",
    "notify.autogiro.body_amount": "Belopp: {amount} {currency}.",
    "notify.autogiro.body_unknown": "Belopp: se tjänsten.",
    "notify.autogiro.trial_title": "Prova-på för {service_name} slutar snart!",
    "notify.autogiro.trial_body": "Prova-på för {service_name} slutar {deadline}.",
    "notify.split.title": "Obetald del i {split_group_id}",
    "notify.split.body": "Du är skyldig {amount} kr till {receiver_id}.",
}

DEADLINE_LABELS = {
    "return_deadline": "retur",
    "exchange_deadline": "byte",
    "warranty_expires": "garanti",
    "refund_deadline": "återbetalning",
}


def format_amount(value: float) -> str:
    """Round to whole kronor with a space as thousands separator.

    Examples:
        249.5 -> "250"
        12499 -> "12 499"
    """
    rounded = math.floor(value + 0.5)
    return f"{rounded:,}".replace(",", " ")


def format_param(value: object, tz: str) -> str:
    """Format one template parameter."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return format_date(value, tz)
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float):
        return format_amount(value)
    return str(value)


def render_message(message: ReminderMessage, tz: str = "UTC") -> tuple[str, str]:
    """Render a reminder message to (title, body)."""
    params = {name: format_param(value, tz) for name, value in message.params.items()}
    kind = message.params.get("kind")
    params.setdefault("deadline_label", DEADLINE_LABELS.get(kind, str(kind or "")))

    title = TEMPLATES[message.title_key].format(**params)
    body = TEMPLATES[message.body_key].format(**params)
    return title, body


def format_notification(title: str, body: str) -> str:
    """Format a rendered reminder as a Telegram HTML message."""
    return f"🔔 <b>{html.escape(title)}</b>\n\n{html.escape(body)}"
