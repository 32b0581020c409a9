# commissions/errors.py
"""Typed failures raised by the commission workflows."""


# ==========================================================
#                  EXCEPTIONS
# ==========================================================
class CommissionException(Exception):
    """Base commission exception"""
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {"error": self.message}


class ValidationError(CommissionException):
    status_code = 400


class InvalidRoleError(ValidationError):
    pass


class InvalidTransitionError(ValidationError):
    pass


class InsufficientBalanceError(ValidationError):
    pass


class NotFoundError(CommissionException):
    status_code = 404


class LedgerWriteError(CommissionException):
    """Storage fault inside a unit of work. Everything in the unit was rolled back."""
    status_code = 500


class LedgerImmutableError(CommissionException):
    pass
