# tests/factories.py
from datetime import timedelta
from decimal import Decimal

import factory
from django.contrib.auth import get_user_model
from django.utils import timezone
from factory.django import DjangoModelFactory

from common.enums import (
    AccountType, BudgetPeriod, ExpenseCategory, GoalType, LiabilityStatus,
)
from finance.models import Account, Bill, Budget, Goal, Liability


class UserFactory(DjangoModelFactory):
    class Meta:
        model = get_user_model()
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.Sequence(lambda n: f"user{n}@example.com")
    password = factory.PostGenerationMethodCall('set_password', 'testpass123')


class AccountFactory(DjangoModelFactory):
    class Meta:
        model = Account

    owner = factory.SubFactory(UserFactory)
    name = factory.Sequence(lambda n: f"Account {n}")
    type = AccountType.BANK
    balance = Decimal('0.00')
    opening_balance = factory.SelfAttribute('balance')


class LiabilityFactory(DjangoModelFactory):
    class Meta:
        model = Liability

    owner = factory.SubFactory(UserFactory)
    description = factory.Sequence(lambda n: f"Loan {n}")
    creditor = "Friend"
    total_amount = Decimal('1000.00')
    paid_amount = Decimal('0.00')
    status = LiabilityStatus.ACTIVE
    settlement_period = factory.LazyFunction(lambda: timezone.localtime().strftime('%Y-%m'))


class BillFactory(DjangoModelFactory):
    class Meta:
        model = Bill

    owner = factory.SubFactory(UserFactory)
    name = factory.Sequence(lambda n: f"Bill {n}")
    amount = Decimal('120.00')
    category = ExpenseCategory.UTILITIES
    due_date = factory.LazyFunction(lambda: timezone.localdate() + timedelta(days=5))
    reminder_days = factory.LazyFunction(lambda: [3, 1])


class BudgetFactory(DjangoModelFactory):
    class Meta:
        model = Budget

    owner = factory.SubFactory(UserFactory)
    name = "Food budget"
    category = ExpenseCategory.FOOD
    period = BudgetPeriod.MONTHLY
    amount = Decimal('500.00')
    start_date = factory.LazyFunction(lambda: timezone.localdate().replace(day=1))
    end_date = factory.LazyAttribute(lambda o: o.start_date + timedelta(days=27))
    alert_threshold = Decimal('80')


class GoalFactory(DjangoModelFactory):
    class Meta:
        model = Goal

    owner = factory.SubFactory(UserFactory)
    name = factory.Sequence(lambda n: f"Goal {n}")
    type = GoalType.SAVINGS
    target_amount = Decimal('1000.00')
    start_date = factory.LazyFunction(timezone.now)
    target_date = factory.LazyAttribute(lambda o: o.start_date + timedelta(days=365))
