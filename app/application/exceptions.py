class BookingError(RuntimeError):
    """Base for every failure surfaced by the reservation engine."""

    code = "booking_error"
    retryable = False


class NotAuthenticated(BookingError):
    code = "not_authenticated"


class InvalidInput(BookingError):
    """Missing or short phone, zero services, slot not on the grid."""

    code = "invalid_input"


class CapacityConflict(BookingError):
    """Not enough free contiguous slots from the start slot."""

    code = "capacity_conflict"


class SlotTaken(BookingError):
    """A needed slot was taken by another request while this one was in flight."""

    code = "slot_taken"
    retryable = True


class AlreadyHasActiveReservation(BookingError):
    code = "already_has_active_reservation"


class AlreadyDecided(BookingError):
    """The request is gone or no longer pending."""

    code = "already_decided"


class PastDeadline(BookingError):
    code = "past_deadline"


class PermissionDenied(BookingError):
    code = "permission_denied"


class TransactionConflict(BookingError):
    """Optimistic-concurrency retries were exhausted."""

    code = "transaction_conflict"
    retryable = True
