"""Consumers of the finance domain events."""

from django.dispatch import receiver

from finance.services.goal_service import GoalService
from finance.signals import liability_paid, transaction_posted


@receiver(liability_paid, dispatch_uid='finance.goals_on_liability_paid')
def recompute_goals_for_liability(sender, owner, liability_id, amount, **kwargs):
    GoalService.update_goals_for_liability(owner, liability_id)


@receiver(transaction_posted, dispatch_uid='finance.goals_on_transaction_posted')
def recompute_goals_for_activity(sender, owner, account_ids, categories, **kwargs):
    GoalService.update_goals_for_accounts(owner, account_ids)
    if categories:
        GoalService.update_goals_for_categories(owner, categories)
