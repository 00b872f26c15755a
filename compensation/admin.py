# ==========================================================
# compensation/admin.py
# ==========================================================
from django.contrib import admin, messages

from compensation.config import pause_income_distribution, resume_income_distribution
from compensation.mlm.wallet_ledger import credit_transaction
from .models import (
    BinaryTreeNode,
    Company,
    CompensationEvent,
    IncomeTransaction,
    JobLock,
    Member,
    MLMConfig,
    Rank,
    SponsorMatchingLevel,
    Wallet,
)


# ==========================================================
# ✅ COMPANY ADMIN (pause / resume income)
# ==========================================================
@admin.register(Company)
class CompanyAdmin(admin.ModelAdmin):
    list_display = ["company_id", "name", "timezone", "is_active", "income_paused", "paused_at"]
    list_filter = ["is_active", "income_paused"]
    search_fields = ["company_id", "name"]
    actions = ["pause_income", "resume_income"]

    @admin.action(description="Pause income distribution")
    def pause_income(self, request, queryset):
        for company in queryset:
            pause_income_distribution(company.company_id, reason=f"paused by {request.user}")
        messages.success(request, f"Paused {queryset.count()} companies")

    @admin.action(description="Resume income distribution")
    def resume_income(self, request, queryset):
        for company in queryset:
            resume_income_distribution(company.company_id)
        messages.success(request, f"Resumed {queryset.count()} companies")


# ==========================================================
# ✅ MLM CONFIG ADMIN
# ==========================================================
class SponsorMatchingLevelInline(admin.TabularInline):
    model = SponsorMatchingLevel
    extra = 0


@admin.register(MLMConfig)
class MLMConfigAdmin(admin.ModelAdmin):
    list_display = [
        "company", "spillover_mode", "pair_ratio", "pair_unit_bv", "pair_income",
        "capping_period", "capping_amount", "carry_forward", "flush_out", "version",
    ]
    readonly_fields = ["version", "updated_at"]
    inlines = [SponsorMatchingLevelInline]

    def save_model(self, request, obj, form, change):
        obj.updated_by = str(request.user)
        super().save_model(request, obj, form, change)


@admin.register(Rank)
class RankAdmin(admin.ModelAdmin):
    list_display = ["company", "level", "code", "name", "team_volume", "pairs", "directs", "reward_cash", "auto_assign"]
    list_filter = ["company", "auto_assign"]
    ordering = ["company", "-level"]


# ==========================================================
# ✅ MEMBER + TREE ADMIN
# ==========================================================
@admin.register(Member)
class MemberAdmin(admin.ModelAdmin):
    list_display = ["member_id", "company", "name", "sponsor", "placement", "placement_side", "rank", "is_active"]
    list_filter = ["company", "is_active", "placement_side"]
    search_fields = ["member_id", "name"]
    raw_id_fields = ["sponsor", "placement"]


@admin.register(BinaryTreeNode)
class BinaryTreeNodeAdmin(admin.ModelAdmin):
    """Aggregates are engine-owned; the admin only reads them."""
    list_display = [
        "member", "side", "left_volume", "right_volume", "own_volume", "total_volume",
        "left_count", "right_count", "lifetime_pairs", "version",
    ]
    list_filter = ["company"]
    search_fields = ["member__member_id"]

    def get_readonly_fields(self, request, obj=None):
        return [f.name for f in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# ==========================================================
# ✅ INCOME TRANSACTION ADMIN (read-only)
# ==========================================================
@admin.register(IncomeTransaction)
class IncomeTransactionAdmin(admin.ModelAdmin):
    list_display = [
        "member", "income_type", "amount", "gross_amount", "pair_count", "level",
        "status", "created_at", "credited_at",
    ]
    list_filter = ["company", "income_type", "status"]
    search_fields = ["member__member_id", "idempotency_key"]
    actions = ["credit_selected"]

    def get_readonly_fields(self, request, obj=None):
        return [f.name for f in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.action(description="Credit selected pending transactions")
    def credit_selected(self, request, queryset):
        credited = sum(
            1 for txn in queryset.filter(status=IncomeTransaction.PENDING)
            if credit_transaction(txn.company_id, txn.pk)
        )
        messages.success(request, f"Credited {credited} transactions")


@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    list_display = ["member", "available_balance", "locked_balance", "total_earned", "total_withdrawn", "is_frozen"]
    list_filter = ["company", "is_frozen"]
    search_fields = ["member__member_id"]
    readonly_fields = ["available_balance", "locked_balance", "total_earned", "total_withdrawn"]


# ==========================================================
# ✅ EVENTS + JOB LOCKS
# ==========================================================
@admin.register(CompensationEvent)
class CompensationEventAdmin(admin.ModelAdmin):
    list_display = ["event_id", "company", "kind", "member", "bv", "status", "attempts", "processed_at"]
    list_filter = ["company", "kind", "status"]
    search_fields = ["event_id", "member__member_id"]


@admin.register(JobLock)
class JobLockAdmin(admin.ModelAdmin):
    list_display = ["job_type", "company", "run_key", "status", "execution_count", "started_at", "finished_at"]
    list_filter = ["job_type", "status"]
