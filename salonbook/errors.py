class SchedulingError(ValueError):
    """Base class for booking rejections raised by the service layer."""


class InvalidBookingInput(SchedulingError):
    pass


class NotFound(SchedulingError):
    pass


class Unauthorized(SchedulingError):
    pass


class PastOrTooSoon(SchedulingError):
    """Submitted start violates the tenant's advance-notice policy."""


class SlotUnavailable(SchedulingError):
    """Submitted start falls outside the provider's bookable hours."""


class SlotTaken(SchedulingError):
    """Submitted interval overlaps a booking committed in the meantime."""


class AppointmentLocked(SchedulingError):
    """Completed and cancelled appointments can no longer be moved."""


class DatastoreError(SchedulingError):
    pass
