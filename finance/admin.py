from django.contrib import admin
from finance.models import (
    Account, Transaction, RecurringConfig, Liability, LiabilityPayment, Bill, BillPayment,
    Budget, Goal, GoalMilestone, Settlement, SettlementAccountSnapshot,
)


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    list_display = ('name', 'type', 'owner', 'balance', 'opening_balance', 'is_active')
    search_fields = ('name', 'owner__username')
    list_filter = ('type', 'is_active')
    readonly_fields = ('balance', 'opening_balance', 'last_transaction_at', 'last_settlement_date')

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('owner')


class RecurringConfigInline(admin.StackedInline):
    model = RecurringConfig
    fk_name = 'template'
    extra = 0
    readonly_fields = ('last_executed', 'executions_count', 'skipped_count', 'approved_at')


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = (
        'id', 'owner', 'type', 'amount', 'account', 'category', 'date',
        'settlement_period', 'is_settled', 'is_recurring',
    )
    list_filter = ('type', 'is_settled', 'is_recurring', 'is_liability_payment', 'settlement_period')
    search_fields = ('description', 'notes', 'owner__username')
    date_hierarchy = 'date'
    readonly_fields = ('is_settled', 'settled_at', 'settlement_period')
    inlines = [RecurringConfigInline]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('owner', 'account', 'destination_account')


class LiabilityPaymentInline(admin.TabularInline):
    model = LiabilityPayment
    extra = 0
    readonly_fields = ('transaction', 'amount', 'date', 'account', 'notes')
    can_delete = False


@admin.register(Liability)
class LiabilityAdmin(admin.ModelAdmin):
    list_display = (
        'description', 'owner', 'creditor', 'total_amount', 'paid_amount',
        'remaining_amount', 'status', 'settlement_period',
    )
    list_filter = ('status', 'settlement_period')
    search_fields = ('description', 'creditor', 'owner__username')
    readonly_fields = ('paid_amount', 'remaining_amount', 'status', 'carried_forward_from')
    inlines = [LiabilityPaymentInline]


class BillPaymentInline(admin.TabularInline):
    model = BillPayment
    extra = 0
    readonly_fields = ('transaction', 'amount', 'date', 'account', 'notes')
    can_delete = False


@admin.register(Bill)
class BillAdmin(admin.ModelAdmin):
    list_display = ('name', 'owner', 'amount', 'paid_amount', 'due_date', 'status', 'is_recurring')
    list_filter = ('status', 'category', 'is_recurring')
    search_fields = ('name', 'owner__username')
    readonly_fields = ('paid_amount', 'status', 'previous_bill')
    inlines = [BillPaymentInline]


@admin.register(Budget)
class BudgetAdmin(admin.ModelAdmin):
    list_display = (
        'name', 'owner', 'category', 'period', 'amount', 'spent',
        'spent_percentage_display', 'alert_level', 'is_active',
    )
    list_filter = ('category', 'period', 'alert_level', 'is_active')
    search_fields = ('name', 'owner__username')
    readonly_fields = ('spent', 'alert_level')

    def spent_percentage_display(self, obj):
        return f"{obj.spent_percentage:.1f}%"
    spent_percentage_display.short_description = 'Spent %'


class GoalMilestoneInline(admin.TabularInline):
    model = GoalMilestone
    extra = 0
    readonly_fields = ('percentage', 'amount', 'target_date', 'is_achieved', 'achieved_at')
    can_delete = False


@admin.register(Goal)
class GoalAdmin(admin.ModelAdmin):
    list_display = ('name', 'owner', 'type', 'target_amount', 'current_amount', 'progress_percentage', 'status')
    list_filter = ('type', 'status', 'priority')
    search_fields = ('name', 'owner__username')
    readonly_fields = (
        'current_amount', 'progress_percentage', 'monthly_target', 'monthly_contribution',
        'projected_completion_date', 'is_on_track', 'completed_at',
    )
    inlines = [GoalMilestoneInline]


class SettlementAccountSnapshotInline(admin.TabularInline):
    model = SettlementAccountSnapshot
    extra = 0
    can_delete = False
    readonly_fields = (
        'account', 'account_name', 'account_type', 'opening_balance', 'closing_balance',
        'total_inflow', 'total_outflow',
    )


@admin.register(Settlement)
class SettlementAdmin(admin.ModelAdmin):
    list_display = (
        'period', 'owner', 'period_type', 'total_income', 'total_expenses',
        'net_cash_flow', 'carry_forward_balance', 'settled_at', 'settled_by',
    )
    list_filter = ('period_type', 'settled_by')
    search_fields = ('period', 'owner__username')
    inlines = [SettlementAccountSnapshotInline]

    def get_readonly_fields(self, request, obj=None):
        if obj is None:
            return ()
        return [field.name for field in self.model._meta.fields if field.name != 'notes']

    def has_delete_permission(self, request, obj=None):
        return False

    def save_model(self, request, obj, form, change):
        if change:
            obj.save(update_fields=['notes', 'updated_at'])
        else:
            super().save_model(request, obj, form, change)
