# tests/test_exceptions.py
import pytest
from rest_framework import exceptions as drf_exceptions

from common.exceptions import (
    DuplicateSettlementError, InsufficientBalanceError, LedgerError, NotFoundError, OverpaymentError,
    SettledImmutableError, ValidationError, custom_exception_handler,
)


@pytest.mark.parametrize('error,status_code,code', [
    (NotFoundError("Account not found"), 404, 'not_found'),
    (ValidationError("Bad amount"), 400, 'validation_error'),
    (InsufficientBalanceError("Not enough"), 422, 'insufficient_balance'),
    (SettledImmutableError("Locked"), 409, 'settled_immutable'),
    (DuplicateSettlementError("Twice"), 409, 'duplicate_settlement'),
    (OverpaymentError("Too much"), 422, 'overpayment'),
])
def test_ledger_errors_map_to_status_codes(error, status_code, code):
    response = custom_exception_handler(error, {})
    assert response.status_code == status_code
    assert response.data['errors'][0]['code'] == code
    assert response.data['errors'][0]['message'] == error.message


def test_details_are_included_when_present():
    error = OverpaymentError("Too much", details={'remaining_amount': '600.00'})
    assert isinstance(error, LedgerError)
    assert error.as_dict() == {
        'code': 'overpayment', 'message': 'Too much', 'details': {'remaining_amount': '600.00'},
    }


def test_drf_errors_keep_their_status():
    response = custom_exception_handler(drf_exceptions.NotAuthenticated(), {})
    assert response.status_code == 401
    assert 'errors' in response.data


def test_unexpected_errors_become_500():
    response = custom_exception_handler(RuntimeError("boom"), {})
    assert response.status_code == 500
    assert response.data == {'errors': ['boom']}
