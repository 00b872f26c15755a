# compensation/models.py
from __future__ import annotations

import uuid
from decimal import Decimal, ROUND_DOWN

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

from compensation.exceptions import ConfigurationError, InvariantViolation

LEFT = "left"
RIGHT = "right"
SIDE_CHOICES = [(LEFT, "Left"), (RIGHT, "Right")]

CENT = Decimal("0.01")


# -----------------------------
# Helpers
# -----------------------------
def money(v) -> Decimal:
    """Quantize to 2 fractional digits, never rounding a payout up."""
    return Decimal(v or 0).quantize(CENT, rounding=ROUND_DOWN)


def default_currency() -> str:
    return settings.COMPENSATION["DEFAULT_CURRENCY"]


# ==========================================================
# TENANT
# ==========================================================
class Company(models.Model):
    """
    One tenant. The primary key is the external companyId, so every
    scoped query reads `filter(company_id=company_id)`.
    """
    company_id = models.CharField(max_length=64, primary_key=True)
    name = models.CharField(max_length=200, blank=True, default="")

    # capping windows (day/week/month) are cut on this timezone
    timezone = models.CharField(max_length=64, default="UTC")
    is_active = models.BooleanField(default=True)

    # income distribution pause (volumes keep aggregating)
    income_paused = models.BooleanField(default=False)
    paused_reason = models.CharField(max_length=255, blank=True, default="")
    paused_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = "Companies"

    def __str__(self) -> str:
        return f"{self.company_id} - {self.name}"


# ==========================================================
# MLM CONFIGURATION (owned by company admin, read-only to engine)
# ==========================================================
class MLMConfig(models.Model):
    SPILLOVER_CHOICES = [("auto", "Auto"), ("manual", "Manual")]
    DIRECT_TYPE_CHOICES = [("fixed", "Fixed"), ("percentage", "Percentage")]
    CREDIT_TIMING_CHOICES = [("instant", "Instant"), ("delayed", "Delayed")]
    CAPPING_PERIOD_CHOICES = [("daily", "Daily"), ("weekly", "Weekly"), ("monthly", "Monthly")]
    WEAK_LEG_CHOICES = [("left", "Left"), ("right", "Right"), ("smaller", "Smaller")]

    company = models.OneToOneField(Company, on_delete=models.CASCADE, related_name="mlm_config")

    spillover_mode = models.CharField(max_length=10, choices=SPILLOVER_CHOICES, default="auto")

    # -------------------------
    # DIRECT INCOME
    # -------------------------
    direct_income_enabled = models.BooleanField(default=False)
    direct_income_type = models.CharField(max_length=12, choices=DIRECT_TYPE_CHOICES, default="percentage")
    direct_income_value = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    direct_income_credit_timing = models.CharField(max_length=10, choices=CREDIT_TIMING_CHOICES, default="instant")
    direct_income_delay_hours = models.PositiveIntegerField(null=True, blank=True)

    # -------------------------
    # BINARY MATCHING
    # -------------------------
    binary_enabled = models.BooleanField(default=True)
    pair_ratio = models.CharField(max_length=10, default="1:1")
    pair_unit_bv = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("1.00"))
    pair_income = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    capping_period = models.CharField(max_length=10, choices=CAPPING_PERIOD_CHOICES, default="daily")
    capping_amount = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    carry_forward = models.BooleanField(default=True)
    flush_out = models.BooleanField(default=False)
    weak_leg_logic = models.CharField(max_length=10, choices=WEAK_LEG_CHOICES, default="smaller")
    allow_partial_pairs = models.BooleanField(default=False)

    # -------------------------
    # REPURCHASE INCOME
    # -------------------------
    repurchase_enabled = models.BooleanField(default=False)
    repurchase_min_bv = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    repurchase_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    repurchase_levels = models.JSONField(default=list, blank=True)
    repurchase_monthly_qualification = models.BooleanField(default=False)

    # -------------------------
    # SPONSOR MATCHING (levels in SponsorMatchingLevel)
    # -------------------------
    sponsor_matching_enabled = models.BooleanField(default=False)
    auto_disable_if_inactive = models.BooleanField(default=False)
    inactive_days = models.PositiveIntegerField(null=True, blank=True)

    version = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)
    updated_by = models.CharField(max_length=64, blank=True, default="")

    class Meta:
        verbose_name = "MLM config"

    def __str__(self) -> str:
        return f"MLMConfig {self.company_id} v{self.version}"

    def ratio(self) -> tuple[int, int]:
        left, _, right = self.pair_ratio.partition(":")
        return int(left), int(right)

    def validate(self) -> None:
        """Raise ConfigurationError on contradictory or malformed settings."""
        if self.carry_forward and self.flush_out:
            raise ConfigurationError("carry_forward and flush_out cannot both be enabled")

        try:
            left, right = self.ratio()
        except ValueError:
            raise ConfigurationError(f"pair_ratio must look like '1:1', got {self.pair_ratio!r}")
        if left <= 0 or right <= 0:
            raise ConfigurationError("pair_ratio parts must be positive")

        if self.pair_unit_bv is None or self.pair_unit_bv <= 0:
            raise ConfigurationError("pair_unit_bv must be positive")
        if self.pair_income is None or self.pair_income < 0:
            raise ConfigurationError("pair_income cannot be negative")
        if self.capping_amount is not None and self.capping_amount <= 0:
            raise ConfigurationError("capping_amount must be positive when set")

        if self.direct_income_value < 0:
            raise ConfigurationError("direct_income_value cannot be negative")
        if self.direct_income_type == "percentage" and self.direct_income_value > 100:
            raise ConfigurationError("direct income percentage cannot exceed 100")
        if self.direct_income_credit_timing == "delayed" and not self.direct_income_delay_hours:
            raise ConfigurationError("delayed direct income needs direct_income_delay_hours")

        if not (Decimal("0") <= self.repurchase_percentage <= Decimal("100")):
            raise ConfigurationError("repurchase_percentage must be between 0 and 100")
        if not isinstance(self.repurchase_levels, list) or any(
            not isinstance(lvl, int) or isinstance(lvl, bool) or lvl < 1 for lvl in self.repurchase_levels
        ):
            raise ConfigurationError("repurchase_levels must be a list of positive integers")

        if self.auto_disable_if_inactive and not self.inactive_days:
            raise ConfigurationError("auto_disable_if_inactive needs inactive_days")

    def clean(self):
        try:
            self.validate()
        except ConfigurationError as exc:
            raise ValidationError(str(exc))

    def save(self, *args, **kwargs):
        self.validate()
        self.version += 1
        super().save(*args, **kwargs)


class SponsorMatchingLevel(models.Model):
    """One row of the sponsor-matching table. Qualification is all-of."""
    config = models.ForeignKey(MLMConfig, on_delete=models.CASCADE, related_name="sponsor_levels")
    level = models.PositiveSmallIntegerField()
    percentage = models.DecimalField(max_digits=5, decimal_places=2)

    team_volume = models.DecimalField(max_digits=18, decimal_places=2, null=True, blank=True)
    pairs = models.PositiveIntegerField(null=True, blank=True)
    directs = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        ordering = ["level"]
        constraints = [
            models.UniqueConstraint(fields=["config", "level"], name="uniq_sponsor_level"),
        ]

    def __str__(self) -> str:
        return f"L{self.level} {self.percentage}%"

    def save(self, *args, **kwargs):
        if self.level < 1:
            raise ConfigurationError("sponsor matching level starts at 1")
        if not (Decimal("0") <= self.percentage <= Decimal("100")):
            raise ConfigurationError("sponsor matching percentage must be between 0 and 100")
        super().save(*args, **kwargs)


class Rank(models.Model):
    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="ranks")
    code = models.CharField(max_length=50)
    name = models.CharField(max_length=100)
    level = models.PositiveIntegerField()

    # qualification
    team_volume = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    pairs = models.PositiveIntegerField(default=0)
    directs = models.PositiveIntegerField(default=0)
    left_volume = models.DecimalField(max_digits=18, decimal_places=2, null=True, blank=True)
    right_volume = models.DecimalField(max_digits=18, decimal_places=2, null=True, blank=True)

    # rewards
    reward_cash = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    reward_products = models.JSONField(default=list, blank=True)

    auto_assign = models.BooleanField(default=True)

    class Meta:
        ordering = ["-level"]
        constraints = [
            models.UniqueConstraint(fields=["company", "code"], name="uniq_rank_code"),
            models.UniqueConstraint(fields=["company", "level"], name="uniq_rank_level"),
        ]

    def __str__(self) -> str:
        return f"{self.code} (L{self.level})"


# ==========================================================
# MEMBER
# ==========================================================
class Member(models.Model):
    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="members")
    member_id = models.CharField(max_length=64)
    name = models.CharField(max_length=200, blank=True, default="")

    # who referred (never changes)
    sponsor = models.ForeignKey(
        "self", null=True, blank=True, on_delete=models.PROTECT, related_name="direct_referrals"
    )
    # where placed in the tree (may differ from sponsor because of spillover)
    placement = models.ForeignKey(
        "self", null=True, blank=True, on_delete=models.PROTECT, related_name="placed_members"
    )
    placement_side = models.CharField(max_length=5, choices=SIDE_CHOICES, null=True, blank=True)

    package_bv = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    rank = models.ForeignKey(Rank, null=True, blank=True, on_delete=models.SET_NULL, related_name="members")
    rank_assigned_at = models.DateTimeField(null=True, blank=True)

    is_active = models.BooleanField(default=True)
    last_activity_at = models.DateTimeField(default=timezone.now)
    joined_at = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["company", "member_id"], name="uniq_company_member"),
        ]

    def __str__(self) -> str:
        return f"{self.company_id}/{self.member_id}"


# ==========================================================
# BINARY TREE NODE (one per member, never deleted)
# ==========================================================
class BinaryTreeNode(models.Model):
    """
    Invariants:
        total_volume == left_volume + right_volume + own_volume
        total_count  == left_count + right_count + 1

    left_volume / right_volume hold the still-matchable volume (pairs
    consume them); the lifetime_* fields only ever grow and feed
    qualification checks.
    """
    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="tree_nodes")
    member = models.OneToOneField(Member, on_delete=models.PROTECT, related_name="tree_node")

    parent = models.ForeignKey(
        "self", null=True, blank=True, on_delete=models.PROTECT, related_name="children"
    )
    side = models.CharField(max_length=5, choices=SIDE_CHOICES, null=True, blank=True)
    left_child = models.OneToOneField(
        "self", null=True, blank=True, on_delete=models.PROTECT, related_name="+"
    )
    right_child = models.OneToOneField(
        "self", null=True, blank=True, on_delete=models.PROTECT, related_name="+"
    )

    left_volume = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    right_volume = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    own_volume = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    total_volume = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    lifetime_left_volume = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    lifetime_right_volume = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    lifetime_pairs = models.PositiveIntegerField(default=0)

    # BV that reached each leg inside the capping window starting at
    # window_start; flush-out of the window before it leaves this alone
    window_start = models.DateTimeField(null=True, blank=True)
    window_left_volume = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    window_right_volume = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    flushed_window_start = models.DateTimeField(null=True, blank=True)

    left_count = models.PositiveIntegerField(default=0)
    right_count = models.PositiveIntegerField(default=0)
    total_count = models.PositiveIntegerField(default=1)

    # optimistic concurrency guard
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["parent", "side"], name="uniq_parent_side"),
        ]
        indexes = [
            models.Index(fields=["company", "parent"], name="node_company_parent_idx"),
        ]

    def __str__(self) -> str:
        return f"Node {self.member} L={self.left_volume} R={self.right_volume}"

    @property
    def team_volume(self) -> Decimal:
        return self.lifetime_left_volume + self.lifetime_right_volume + self.own_volume

    def child_on(self, side: str):
        return self.left_child_id if side == LEFT else self.right_child_id

    def check_invariants(self) -> None:
        if self.total_volume != self.left_volume + self.right_volume + self.own_volume:
            raise InvariantViolation(f"volume mismatch on {self.member_id}")
        if self.total_count != self.left_count + self.right_count + 1:
            raise InvariantViolation(f"count mismatch on {self.member_id}")


# ==========================================================
# INCOME TRANSACTION (immutable after insert)
# ==========================================================
class IncomeTransaction(models.Model):
    DIRECT = "direct"
    BINARY_MATCHING = "binary_matching"
    REPURCHASE = "repurchase"
    SPONSOR_MATCHING = "sponsor_matching"
    RANK_REWARD = "rank_reward"
    INCOME_TYPES = [
        (DIRECT, "Direct"),
        (BINARY_MATCHING, "Binary matching"),
        (REPURCHASE, "Repurchase"),
        (SPONSOR_MATCHING, "Sponsor matching"),
        (RANK_REWARD, "Rank reward"),
    ]

    PENDING = "pending"
    CREDITED = "credited"
    CANCELLED = "cancelled"
    STATUS_CHOICES = [(PENDING, "Pending"), (CREDITED, "Credited"), (CANCELLED, "Cancelled")]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="income_transactions")
    member = models.ForeignKey(Member, on_delete=models.PROTECT, related_name="income_transactions")
    income_type = models.CharField(max_length=20, choices=INCOME_TYPES)

    amount = models.DecimalField(max_digits=14, decimal_places=2)
    gross_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default=default_currency)
    description = models.CharField(max_length=255, blank=True, default="")

    related_member = models.ForeignKey(
        Member, null=True, blank=True, on_delete=models.PROTECT, related_name="+"
    )
    pair_count = models.PositiveIntegerField(null=True, blank=True)
    level = models.PositiveSmallIntegerField(null=True, blank=True)

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=PENDING)
    idempotency_key = models.CharField(max_length=200, null=True, blank=True)
    credit_after = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    credited_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["company", "idempotency_key"], name="uniq_income_idempotency"),
        ]
        indexes = [
            models.Index(fields=["member", "income_type", "created_at"], name="income_member_type_idx"),
            models.Index(fields=["company", "status"], name="income_company_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.member} - {self.income_type} - {self.amount} ({self.status})"

    @property
    def was_capped(self) -> bool:
        return self.gross_amount > self.amount

    def save(self, *args, **kwargs):
        # status moves only through conditional queryset updates (wallet ledger)
        if not self._state.adding:
            raise InvariantViolation("income transactions are immutable once created")
        super().save(*args, **kwargs)


# ==========================================================
# WALLET
# ==========================================================
class Wallet(models.Model):
    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="wallets")
    member = models.OneToOneField(Member, on_delete=models.PROTECT, related_name="wallet")

    available_balance = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    locked_balance = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    total_earned = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    total_withdrawn = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))

    currency = models.CharField(max_length=3, default=default_currency)
    is_frozen = models.BooleanField(default=False)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Wallet {self.member} avail={self.available_balance}"


# ==========================================================
# EVENT LOG (at-most-once pipeline processing)
# ==========================================================
class CompensationEvent(models.Model):
    REGISTRATION = "registration"
    PURCHASE = "purchase"
    KIND_CHOICES = [(REGISTRATION, "Registration"), (PURCHASE, "Purchase")]

    RECEIVED = "received"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    STATUS_CHOICES = [
        (RECEIVED, "Received"),
        (PROCESSING, "Processing"),
        (COMPLETED, "Completed"),
        (FAILED, "Failed"),
    ]

    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="events")
    event_id = models.CharField(max_length=100)
    kind = models.CharField(max_length=20, choices=KIND_CHOICES)
    member = models.ForeignKey(Member, null=True, blank=True, on_delete=models.PROTECT, related_name="events")
    bv = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    # registration inputs
    sponsor_member_id = models.CharField(max_length=64, blank=True, default="")
    requested_side = models.CharField(max_length=5, blank=True, default="")

    # set once the BV delta reached the root; a retry never re-applies it
    volume_applied = models.BooleanField(default=False)
    # 1 = own volume written, 1 + n = n ancestors written; a retry resumes after it
    volume_progress = models.PositiveIntegerField(default=0)

    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=RECEIVED)
    attempts = models.PositiveIntegerField(default=0)
    error = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["company", "event_id"], name="uniq_company_event"),
        ]

    def __str__(self) -> str:
        return f"{self.company_id}/{self.event_id} {self.kind} ({self.status})"


# ==========================================================
# JOB LOCK (periodic job idempotency)
# ==========================================================
class JobLock(models.Model):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    STATUS_CHOICES = [(PROCESSING, "Processing"), (COMPLETED, "Completed"), (FAILED, "Failed")]

    company = models.ForeignKey(Company, on_delete=models.CASCADE, related_name="job_locks")
    job_type = models.CharField(max_length=50)
    run_key = models.CharField(max_length=64)

    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=PROCESSING)
    execution_count = models.PositiveIntegerField(default=0)
    error = models.TextField(blank=True, default="")
    started_at = models.DateTimeField(null=True, blank=True)
    finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["company", "job_type", "run_key"], name="uniq_job_lock"),
        ]

    def __str__(self) -> str:
        return f"{self.job_type}:{self.company_id}:{self.run_key} ({self.status})"
