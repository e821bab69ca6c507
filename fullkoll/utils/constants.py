"""Constants and default values."""

# Storage domains
RECEIPTS = "receipts"
GIFTCARDS = "giftcards"
SUBSCRIPTIONS = "subscriptions"
SETTLEMENTS = "settlements"
TRANSACTIONS = "transactions"
NOTIFICATIONS_LOG = "notifications_log"

# Receipt deadline fields, in evaluation order
RECEIPT_DEADLINE_FIELDS = [
    "return_deadline",
    "exchange_deadline",
    "warranty_expires",
    "refund_deadline",
]

# Lead-time offsets in days
RECEIPT_OFFSETS = [7, 1]
GIFTCARD_OFFSETS = [30, 7]
DEFAULT_CHARGE_OFFSETS = [7, 1]

SETTLEMENT_DUE_DAYS = 3
SETTLED_STATUS = "settled"

# Analytics event names attached to every scheduled reminder
RECEIPT_EVENT = "receipt_reminder_fired"
GIFTCARD_EVENT = "giftcard_reminder_fired"
AUTOGIRO_EVENT = "autogiro_reminder_fired"
TRIAL_END_EVENT = "autogiro_trial_end"
SETTLEMENT_EVENT = "split_payment_reminder_fired"

# Billing intervals understood by the ledger pass
BILLING_INTERVALS = ("weekly", "monthly", "yearly")

DEFAULT_TIMEZONE = "Europe/Stockholm"
DEFAULT_REMINDER_HOUR = 9
DEFAULT_CURRENCY = "SEK"
