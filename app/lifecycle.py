"""
Payment status transition tables.

Two levels are tracked:

- rent transactions (one row per scheduled rent/deposit obligation), and
- the booking-level ``payment_status`` used by the one-off SEPA charge.

Nothing in this module touches the database or the payment processor, so the
tables can be exercised directly in tests.
"""

# Rent transaction statuses.
PENDING = "pending"
SCHEDULED = "scheduled"
PROCESSING = "processing"
PAID = "paid"
PAID_MANUALLY = "paid_manually"
FAILED = "failed"

TRANSACTION_STATUSES = (PENDING, SCHEDULED, PROCESSING, PAID, PAID_MANUALLY, FAILED)
TERMINAL_TRANSACTION_STATUSES = frozenset({PAID, PAID_MANUALLY})

# Booking payment statuses. A booking that was never charged has no status.
BOOKING_PENDING = "pending"
PROCESSING_STRIPE = "processing_stripe"
PAID_STRIPE = "paid_stripe"
PAID_MANUAL = "paid_manual"
FAILED_STRIPE = "failed_stripe"

BOOKING_PAYMENT_STATUSES = (None, BOOKING_PENDING, PROCESSING_STRIPE, PAID_STRIPE, PAID_MANUAL, FAILED_STRIPE)
CHARGE_BLOCKING_STATUSES = frozenset({PROCESSING_STRIPE, PAID_STRIPE, PAID_MANUAL})

# Actions.
CHARGE = "charge"
CHARGE_FAILED = "charge_failed"
INVOICE_CREATED = "invoice_created"
PAYMENT_SUCCEEDED = "payment_succeeded"
PAYMENT_FAILED = "payment_failed"
SWITCH_TO_MANUAL = "switch_to_manual"
MARK_PAID_MANUALLY = "mark_paid_manually"

# action -> (allowed source statuses, target status)
TRANSACTION_TRANSITIONS = {
    CHARGE: ({SCHEDULED, FAILED}, PROCESSING),
    CHARGE_FAILED: ({SCHEDULED, PROCESSING, FAILED}, FAILED),
    INVOICE_CREATED: ({SCHEDULED, PROCESSING}, PROCESSING),
    # Money collected by the processor is recorded even if an operator
    # switched the row to manual in the meantime.
    PAYMENT_SUCCEEDED: ({SCHEDULED, PROCESSING, FAILED, PENDING}, PAID),
    PAYMENT_FAILED: ({SCHEDULED, PROCESSING}, FAILED),
    SWITCH_TO_MANUAL: ({SCHEDULED, PROCESSING, FAILED}, PENDING),
    MARK_PAID_MANUALLY: ({PENDING, SCHEDULED, PROCESSING, FAILED}, PAID_MANUALLY),
}

BOOKING_TRANSITIONS = {
    CHARGE: ({None, BOOKING_PENDING, FAILED_STRIPE}, PROCESSING_STRIPE),
    CHARGE_FAILED: ({None, BOOKING_PENDING, FAILED_STRIPE, PROCESSING_STRIPE}, FAILED_STRIPE),
    PAYMENT_SUCCEEDED: ({None, BOOKING_PENDING, PROCESSING_STRIPE, FAILED_STRIPE}, PAID_STRIPE),
    PAYMENT_FAILED: ({PROCESSING_STRIPE}, FAILED_STRIPE),
    MARK_PAID_MANUALLY: ({None, BOOKING_PENDING, PROCESSING_STRIPE, FAILED_STRIPE}, PAID_MANUAL),
}


class TransitionRejected(Exception):
    """The requested action is not allowed from the current status."""

    def __init__(self, current, action, reason):
        super().__init__(reason)
        self.current = current
        self.action = action
        self.reason = reason


def _label(status):
    return "none" if status is None else status


def _rejection_reason(current, action):
    if action == SWITCH_TO_MANUAL:
        return f"Transaction is already in status '{_label(current)}' and cannot be switched to manual."
    if action == MARK_PAID_MANUALLY:
        return f"Payment is already '{_label(current)}' and cannot be marked as paid manually."
    if action == CHARGE and current in CHARGE_BLOCKING_STATUSES:
        return f"Payment is already {current}."
    return f"Cannot apply '{action}' to a payment in status '{_label(current)}'."


def _apply(table, current, action):
    if action not in table:
        raise ValueError(f"Unknown payment action: {action}")
    allowed, target = table[action]
    if current not in allowed:
        raise TransitionRejected(current, action, _rejection_reason(current, action))
    return target


def next_status(current, action):
    """Return the transaction status reached by ``action`` from ``current``."""
    if current not in TRANSACTION_STATUSES:
        raise ValueError(f"Unknown transaction status: {current}")
    return _apply(TRANSACTION_TRANSITIONS, current, action)


def next_booking_status(current, action):
    """Same as :func:`next_status` for the booking ``payment_status`` column."""
    if current not in BOOKING_PAYMENT_STATUSES:
        raise ValueError(f"Unknown booking payment status: {current}")
    return _apply(BOOKING_TRANSITIONS, current, action)


def can_apply(current, action, booking_level=False):
    check = next_booking_status if booking_level else next_status
    try:
        check(current, action)
    except TransitionRejected:
        return False
    return True


def initial_status(collection_method):
    """Status given to freshly minted transactions of a booking."""
    if collection_method == "automatic":
        return SCHEDULED
    if collection_method == "manual":
        return PENDING
    raise ValueError(f"Unknown payment collection method: {collection_method}")


# Statuses in which a record is bound to the PaymentIntent it stores.
INTENT_BOUND_TRANSACTION_STATUSES = frozenset({PROCESSING, PAID})
INTENT_BOUND_BOOKING_STATUSES = frozenset({PROCESSING_STRIPE, PAID_STRIPE})


def is_stale_intent(current, tracked_intent_id, intent_id, booking_level=False):
    """True when ``intent_id`` is not the intent a live or paid record tracks.

    Outcomes of such an intent must not move the record: a retry has
    replaced it, or it belongs to an earlier attempt.
    """
    if not tracked_intent_id or not intent_id or tracked_intent_id == intent_id:
        return False
    bound = INTENT_BOUND_BOOKING_STATUSES if booking_level else INTENT_BOUND_TRANSACTION_STATUSES
    return current in bound
