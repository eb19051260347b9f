"""Domain events sent by the ledger core after a successful commit."""

from django.dispatch import Signal

# A payment was applied to a liability.
# Provides: owner, liability_id, amount
liability_paid = Signal()

# A transaction was created, updated or deleted.
# Provides: owner, account_ids, categories
transaction_posted = Signal()
