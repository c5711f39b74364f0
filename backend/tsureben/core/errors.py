"""Domain errors raised by the services and translated to HTTP by the routers."""


class TsurebenError(Exception):
    """Base class for every domain error."""


class NoActivePlan(TsurebenError):
    """No plan entry covers the instant the timer was asked to start."""


class InvalidTimeRange(TsurebenError, ValueError):
    """Plan entry whose start does not strictly precede its end."""


class InvalidTransition(TsurebenError):
    """Timer operation not allowed from the current state."""

    def __init__(self, operation: str, state: str) -> None:
        super().__init__(f"Cannot {operation} while {state}")
        self.operation = operation
        self.state = state


class ReauthRequired(TsurebenError):
    """Identity session expired and silent re-authentication failed."""


class InvalidDuration(TsurebenError):
    """Elapsed minutes outside the accepted range, or not a finite number."""

    def __init__(self, minutes: float) -> None:
        super().__init__(f"Invalid session duration: {minutes!r} minutes")
        self.minutes = minutes


class ManualEntryRequired(TsurebenError):
    """The caller must supply a minute count by hand before finishing.

    ``reason`` is ``"reauth_required"`` or ``"invalid_duration"``.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class OrphanedSession(TsurebenError):
    """A running session has lost its persisted start anchor."""


class ConfirmationRequired(TsurebenError):
    """Destructive action issued without an explicit confirmation."""


class PlanNotFound(TsurebenError):
    pass


class UserNotFound(TsurebenError):
    pass


class StoreError(TsurebenError):
    """Document store read or write failed."""
