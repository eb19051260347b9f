from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
from django.contrib.contenttypes.models import ContentType

from tests.factories import AccountFactory, UserFactory


@pytest.fixture(autouse=True)
def enable_db_access_for_all_tests(db):
    """
    Automatically enable database access for all tests.
    This fixture runs for every test function.
    """
    pass


@pytest.fixture(autouse=True)
def clear_content_type_cache():
    """
    Clear ContentType cache before and after each test to prevent
    cross-test contamination.
    """
    ContentType.objects.clear_cache()
    yield
    ContentType.objects.clear_cache()


@pytest.fixture
def user():
    return UserFactory()


@pytest.fixture
def jan_2024():
    """A fixed moment in the middle of January 2024."""
    return datetime(2024, 1, 15, 10, 0, tzinfo=ZoneInfo("UTC"))


@pytest.fixture
def wallet(user):
    return AccountFactory(owner=user, name="Wallet", balance=1000, opening_balance=1000)
