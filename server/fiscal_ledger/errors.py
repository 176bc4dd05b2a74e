"""Error taxonomy shared by every engine.

All errors derive from ``ValueError`` so service callers can keep catching
``ValueError`` the way the rest of the codebase does. The HTTP layer maps the
``kind`` of an error to a status code in ``fiscal_ledger.main``.
"""
from typing import Optional


class LedgerError(ValueError):
    kind = "error"
    status_code = 400

    def __init__(self, message: str, *, current_state: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.current_state = current_state

    def to_dict(self) -> dict:
        payload = {"detail": self.message, "kind": self.kind}
        if self.current_state is not None:
            payload["current_state"] = self.current_state
        return payload


class ValidationError(LedgerError):
    """Malformed input, rejected before anything is persisted."""

    kind = "validation_error"
    status_code = 400


class InvalidAccountError(ValidationError):
    pass


class InvalidTaxIdError(ValidationError):
    pass


class InvariantViolation(LedgerError):
    """A money-safety rule would be broken; the whole operation is rejected."""

    kind = "invariant_violation"
    status_code = 422


class UnbalancedEntryError(InvariantViolation):
    pass


class InsufficientLinesError(InvariantViolation):
    pass


class OverAppliedError(InvariantViolation):
    pass


class DuplicateCodeError(InvariantViolation):
    pass


class AccountInUseError(InvariantViolation):
    pass


class StateConflict(LedgerError):
    kind = "state_conflict"
    status_code = 409


class NotDraftError(StateConflict):
    pass


class NoLinesError(StateConflict):
    pass


class MissingAccountDefaultError(StateConflict):
    pass


class NotFoundError(LedgerError):
    kind = "not_found"
    status_code = 404


class ConcurrencyConflict(LedgerError):
    """Lost an optimistic-lock race; the caller should retry the whole operation."""

    kind = "concurrency_conflict"
    status_code = 409
