from django.apps import AppConfig


class FinanceConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'finance'
    verbose_name = 'Personal Finance Ledger'

    def ready(self):
        from finance import receivers  # noqa: F401
