"""Domain errors for the ledger core and the project's DRF exception handler."""

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler


class LedgerError(Exception):
    """Base class for every error raised by the finance services."""

    code = 'ledger_error'
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message='', details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def as_dict(self):
        payload = {'code': self.code, 'message': self.message}
        if self.details:
            payload['details'] = self.details
        return payload


class NotFoundError(LedgerError):
    code = 'not_found'
    status_code = status.HTTP_404_NOT_FOUND


class ValidationError(LedgerError):
    code = 'validation_error'
    status_code = status.HTTP_400_BAD_REQUEST


class InsufficientBalanceError(LedgerError):
    code = 'insufficient_balance'
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class SettledImmutableError(LedgerError):
    code = 'settled_immutable'
    status_code = status.HTTP_409_CONFLICT


class DuplicateSettlementError(LedgerError):
    code = 'duplicate_settlement'
    status_code = status.HTTP_409_CONFLICT


class OverpaymentError(LedgerError):
    code = 'overpayment'
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


def custom_exception_handler(exc, context):
    """Return a consistent error response structure."""
    if isinstance(exc, LedgerError):
        return Response({"errors": [exc.as_dict()]}, status=exc.status_code)

    response = exception_handler(exc, context)

    if response is None:
        # If DRF couldn't handle the exception, fall back to a generic 500.
        return Response(
            {"errors": [str(exc)]}, status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    return Response({"errors": response.data}, status=response.status_code)
