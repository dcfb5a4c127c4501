"""errors.py - Exception types shared by the fare lookup, price check and trip services."""

from typing import Optional


class FareAwareError(Exception):
    """Base class for all application errors."""


# ---- Fare lookup ----

class LookupTransportError(FareAwareError):
    """Amadeus could not be reached, rejected the request, or returned garbage."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AmadeusAuthError(LookupTransportError):
    """OAuth client-credential token could not be obtained."""


# ---- Price checks ----

class InvalidPriceState(FareAwareError):
    """A tracked flight has no usable original price to compare against."""


class AlertTransactionError(FareAwareError):
    """The price drop writes for a flight were rolled back."""

    def __init__(self, flight_id: int, cause: Exception) -> None:
        super().__init__(f"alert processing failed for flight {flight_id}: {cause}")
        self.flight_id = flight_id
        self.cause = cause


class SweepFatalError(FareAwareError):
    """The due-flight set could not be loaded, so nothing was checked."""


class NotificationError(FareAwareError):
    """The price drop email could not be handed to the mail server."""


# ---- Trips ----

class TripValidationError(FareAwareError):
    pass


class PlanLimitError(FareAwareError):
    pass


class DuplicateTripError(FareAwareError):
    pass


class TripNotFoundError(FareAwareError):
    pass


class UserNotFoundError(FareAwareError):
    pass
