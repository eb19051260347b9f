from django.db import models


class BaseEnum(models.TextChoices):
    @classmethod
    def choices(cls):
        return [(choice.value, choice.label) for choice in cls]


class AccountType(BaseEnum):
    CASH = 'cash', 'Cash'
    BANK = 'bank', 'Bank'
    SAVINGS = 'savings', 'Savings'
    INVESTMENT = 'investment', 'Investment'
    LOAN = 'loan', 'Loan'


class TransactionType(BaseEnum):
    INCOME = 'income', 'Income'
    EXPENSE = 'expense', 'Expense'
    TRANSFER = 'transfer', 'Transfer'
    LIABILITY = 'liability', 'Liability'


class IncomeCategory(BaseEnum):
    SALARY = 'salary', 'Salary'
    FREELANCE = 'freelance', 'Freelance Work'
    BUSINESS = 'business', 'Business Income'
    INVESTMENT = 'investment', 'Investment Returns'
    RENTAL = 'rental', 'Rental Income'
    ALLOWANCE = 'allowance', 'Gift/Allowance'
    REFUND = 'refund', 'Refund'
    BONUS = 'bonus', 'Bonus'
    OTHER_INCOME = 'other_income', 'Other Income'


class ExpenseCategory(BaseEnum):
    FOOD = 'food', 'Food & Dining'
    GROCERIES = 'groceries', 'Groceries'
    TRANSPORT = 'transport', 'Transportation'
    UTILITIES = 'utilities', 'Utilities'
    RENT = 'rent', 'Rent & Housing'
    HEALTHCARE = 'healthcare', 'Healthcare'
    EDUCATION = 'education', 'Education'
    ENTERTAINMENT = 'entertainment', 'Entertainment'
    SHOPPING = 'shopping', 'Shopping'
    INSURANCE = 'insurance', 'Insurance'
    SUBSCRIPTIONS = 'subscriptions', 'Subscriptions'
    GIFTS = 'gifts', 'Gifts & Donations'
    DEBT_PAYMENT = 'debt_payment', 'Debt Payment'
    OTHER_EXPENSE = 'other_expense', 'Other Expense'


class Frequency(BaseEnum):
    DAILY = 'daily', 'Daily'
    WEEKLY = 'weekly', 'Weekly'
    MONTHLY = 'monthly', 'Monthly'
    YEARLY = 'yearly', 'Yearly'


class RecurringState(BaseEnum):
    SCHEDULED = 'scheduled', 'Scheduled'
    PENDING_APPROVAL = 'pending_approval', 'Pending Approval'
    DUE = 'due', 'Due'
    ENDED = 'ended', 'Ended'


class LiabilityStatus(BaseEnum):
    ACTIVE = 'active', 'Active'
    PARTIALLY_PAID = 'partially_paid', 'Partially Paid'
    FULLY_PAID = 'fully_paid', 'Fully Paid'


class BillStatus(BaseEnum):
    UPCOMING = 'upcoming', 'Upcoming'
    OVERDUE = 'overdue', 'Overdue'
    PARTIALLY_PAID = 'partially_paid', 'Partially Paid'
    PAID = 'paid', 'Paid'


class BudgetPeriod(BaseEnum):
    WEEKLY = 'weekly', 'Weekly'
    MONTHLY = 'monthly', 'Monthly'
    YEARLY = 'yearly', 'Yearly'


class BudgetAlertLevel(BaseEnum):
    NONE = 'none', 'None'
    WARNING = 'warning', 'Warning'
    EXCEEDED = 'exceeded', 'Exceeded'


class GoalType(BaseEnum):
    SAVINGS = 'savings', 'Savings'
    INVESTMENT = 'investment', 'Investment'
    DEBT_PAYOFF = 'debt_payoff', 'Debt Payoff'
    EXPENSE_REDUCTION = 'expense_reduction', 'Expense Reduction'


class GoalStatus(BaseEnum):
    ACTIVE = 'active', 'Active'
    COMPLETED = 'completed', 'Completed'
    ABANDONED = 'abandoned', 'Abandoned'
    PAUSED = 'paused', 'Paused'


class PeriodType(BaseEnum):
    MONTHLY = 'monthly', 'Monthly'
    YEARLY = 'yearly', 'Yearly'


class SettledBy(BaseEnum):
    MANUAL = 'manual', 'Manual'
    AUTOMATIC = 'automatic', 'Automatic'


class PriorityLevel(BaseEnum):
    LOW = 'low', 'Low'
    MEDIUM = 'medium', 'Medium'
    HIGH = 'high', 'High'
    URGENT = 'urgent', 'Urgent'


class NotificationKind(BaseEnum):
    BUDGET_THRESHOLD = 'budget_threshold', 'Budget Threshold'
    BUDGET_EXCEEDED = 'budget_exceeded', 'Budget Exceeded'
    BILL_REMINDER = 'bill_reminder', 'Bill Reminder'
    BILL_PAID = 'bill_paid', 'Bill Paid'
    LIABILITY_PAYMENT = 'liability_payment', 'Liability Payment'
    GOAL_MILESTONE = 'goal_milestone', 'Goal Milestone'
    GOAL_COMPLETED = 'goal_completed', 'Goal Completed'
    RECURRING_APPROVAL = 'recurring_approval', 'Recurring Approval'
    RECURRING_EXECUTED = 'recurring_executed', 'Recurring Executed'
    SETTLEMENT_COMPLETED = 'settlement_completed', 'Settlement Completed'
    SETTLEMENT_REMINDER = 'settlement_reminder', 'Settlement Reminder'


class AuditAction(BaseEnum):
    ACCOUNT_CREATE = 'account_create', 'Account Created'
    ACCOUNT_UPDATE = 'account_update', 'Account Updated'
    ACCOUNT_DEACTIVATE = 'account_deactivate', 'Account Deactivated'
    ACCOUNT_DELETE = 'account_delete', 'Account Deleted'
    TRANSACTION_CREATE = 'transaction_create', 'Transaction Created'
    TRANSACTION_UPDATE = 'transaction_update', 'Transaction Updated'
    TRANSACTION_DELETE = 'transaction_delete', 'Transaction Deleted'
    LIABILITY_CREATE = 'liability_create', 'Liability Created'
    LIABILITY_UPDATE = 'liability_update', 'Liability Updated'
    LIABILITY_DELETE = 'liability_delete', 'Liability Deleted'
    LIABILITY_PAYMENT = 'liability_payment', 'Liability Payment'
    BILL_CREATE = 'bill_create', 'Bill Created'
    BILL_UPDATE = 'bill_update', 'Bill Updated'
    BILL_DELETE = 'bill_delete', 'Bill Deleted'
    BILL_PAYMENT = 'bill_payment', 'Bill Payment'
    BUDGET_CREATE = 'budget_create', 'Budget Created'
    BUDGET_UPDATE = 'budget_update', 'Budget Updated'
    BUDGET_DELETE = 'budget_delete', 'Budget Deleted'
    GOAL_CREATE = 'goal_create', 'Goal Created'
    GOAL_UPDATE = 'goal_update', 'Goal Updated'
    GOAL_DELETE = 'goal_delete', 'Goal Deleted'
    RECURRING_APPROVE = 'recurring_approve', 'Recurring Approved'
    RECURRING_SKIP = 'recurring_skip', 'Recurring Skipped'
    RECURRING_CANCEL = 'recurring_cancel', 'Recurring Cancelled'
    SETTLEMENT_EXECUTE = 'settlement_execute', 'Settlement Executed'
    SETTLEMENT_NOTES = 'settlement_notes', 'Settlement Notes Updated'
