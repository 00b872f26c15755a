import uuid
from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

import compensation.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Company",
            fields=[
                ("company_id", models.CharField(max_length=64, primary_key=True, serialize=False)),
                ("name", models.CharField(blank=True, default="", max_length=200)),
                ("timezone", models.CharField(default="UTC", max_length=64)),
                ("is_active", models.BooleanField(default=True)),
                ("income_paused", models.BooleanField(default=False)),
                ("paused_reason", models.CharField(blank=True, default="", max_length=255)),
                ("paused_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "verbose_name_plural": "Companies",
            },
        ),
        migrations.CreateModel(
            name="MLMConfig",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("spillover_mode", models.CharField(choices=[("auto", "Auto"), ("manual", "Manual")], default="auto", max_length=10)),
                ("direct_income_enabled", models.BooleanField(default=False)),
                ("direct_income_type", models.CharField(choices=[("fixed", "Fixed"), ("percentage", "Percentage")], default="percentage", max_length=12)),
                ("direct_income_value", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("direct_income_credit_timing", models.CharField(choices=[("instant", "Instant"), ("delayed", "Delayed")], default="instant", max_length=10)),
                ("direct_income_delay_hours", models.PositiveIntegerField(blank=True, null=True)),
                ("binary_enabled", models.BooleanField(default=True)),
                ("pair_ratio", models.CharField(default="1:1", max_length=10)),
                ("pair_unit_bv", models.DecimalField(decimal_places=2, default=Decimal("1.00"), max_digits=12)),
                ("pair_income", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("capping_period", models.CharField(choices=[("daily", "Daily"), ("weekly", "Weekly"), ("monthly", "Monthly")], default="daily", max_length=10)),
                ("capping_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ("carry_forward", models.BooleanField(default=True)),
                ("flush_out", models.BooleanField(default=False)),
                ("weak_leg_logic", models.CharField(choices=[("left", "Left"), ("right", "Right"), ("smaller", "Smaller")], default="smaller", max_length=10)),
                ("allow_partial_pairs", models.BooleanField(default=False)),
                ("repurchase_enabled", models.BooleanField(default=False)),
                ("repurchase_min_bv", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("repurchase_percentage", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=5)),
                ("repurchase_levels", models.JSONField(blank=True, default=list)),
                ("repurchase_monthly_qualification", models.BooleanField(default=False)),
                ("sponsor_matching_enabled", models.BooleanField(default=False)),
                ("auto_disable_if_inactive", models.BooleanField(default=False)),
                ("inactive_days", models.PositiveIntegerField(blank=True, null=True)),
                ("version", models.PositiveIntegerField(default=0)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("updated_by", models.CharField(blank=True, default="", max_length=64)),
                ("company", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="mlm_config", to="compensation.company")),
            ],
            options={
                "verbose_name": "MLM config",
            },
        ),
        migrations.CreateModel(
            name="Rank",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=50)),
                ("name", models.CharField(max_length=100)),
                ("level", models.PositiveIntegerField()),
                ("team_volume", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("pairs", models.PositiveIntegerField(default=0)),
                ("directs", models.PositiveIntegerField(default=0)),
                ("left_volume", models.DecimalField(blank=True, decimal_places=2, max_digits=18, null=True)),
                ("right_volume", models.DecimalField(blank=True, decimal_places=2, max_digits=18, null=True)),
                ("reward_cash", models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ("reward_products", models.JSONField(blank=True, default=list)),
                ("auto_assign", models.BooleanField(default=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="ranks", to="compensation.company")),
            ],
            options={
                "ordering": ["-level"],
            },
        ),
        migrations.AddConstraint(
            model_name="rank",
            constraint=models.UniqueConstraint(fields=("company", "code"), name="uniq_rank_code"),
        ),
        migrations.AddConstraint(
            model_name="rank",
            constraint=models.UniqueConstraint(fields=("company", "level"), name="uniq_rank_level"),
        ),
        migrations.CreateModel(
            name="SponsorMatchingLevel",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("level", models.PositiveSmallIntegerField()),
                ("percentage", models.DecimalField(decimal_places=2, max_digits=5)),
                ("team_volume", models.DecimalField(blank=True, decimal_places=2, max_digits=18, null=True)),
                ("pairs", models.PositiveIntegerField(blank=True, null=True)),
                ("directs", models.PositiveIntegerField(blank=True, null=True)),
                ("config", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="sponsor_levels", to="compensation.mlmconfig")),
            ],
            options={
                "ordering": ["level"],
            },
        ),
        migrations.AddConstraint(
            model_name="sponsormatchinglevel",
            constraint=models.UniqueConstraint(fields=("config", "level"), name="uniq_sponsor_level"),
        ),
        migrations.CreateModel(
            name="Member",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("member_id", models.CharField(max_length=64)),
                ("name", models.CharField(blank=True, default="", max_length=200)),
                ("placement_side", models.CharField(blank=True, choices=[("left", "Left"), ("right", "Right")], max_length=5, null=True)),
                ("package_bv", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("rank_assigned_at", models.DateTimeField(blank=True, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("last_activity_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("joined_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="members", to="compensation.company")),
                ("sponsor", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="direct_referrals", to="compensation.member")),
                ("placement", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="placed_members", to="compensation.member")),
                ("rank", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="members", to="compensation.rank")),
            ],
        ),
        migrations.AddConstraint(
            model_name="member",
            constraint=models.UniqueConstraint(fields=("company", "member_id"), name="uniq_company_member"),
        ),
        migrations.CreateModel(
            name="BinaryTreeNode",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("side", models.CharField(blank=True, choices=[("left", "Left"), ("right", "Right")], max_length=5, null=True)),
                ("left_volume", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("right_volume", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("own_volume", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("total_volume", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("lifetime_left_volume", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("lifetime_right_volume", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("lifetime_pairs", models.PositiveIntegerField(default=0)),
                ("left_count", models.PositiveIntegerField(default=0)),
                ("right_count", models.PositiveIntegerField(default=0)),
                ("total_count", models.PositiveIntegerField(default=1)),
                ("version", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="tree_nodes", to="compensation.company")),
                ("member", models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name="tree_node", to="compensation.member")),
                ("parent", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="children", to="compensation.binarytreenode")),
                ("left_child", models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="+", to="compensation.binarytreenode")),
                ("right_child", models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="+", to="compensation.binarytreenode")),
            ],
        ),
        migrations.AddConstraint(
            model_name="binarytreenode",
            constraint=models.UniqueConstraint(fields=("parent", "side"), name="uniq_parent_side"),
        ),
        migrations.AddIndex(
            model_name="binarytreenode",
            index=models.Index(fields=["company", "parent"], name="node_company_parent_idx"),
        ),
        migrations.CreateModel(
            name="IncomeTransaction",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("income_type", models.CharField(choices=[("direct", "Direct"), ("binary_matching", "Binary matching"), ("repurchase", "Repurchase"), ("sponsor_matching", "Sponsor matching"), ("rank_reward", "Rank reward")], max_length=20)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=14)),
                ("gross_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("currency", models.CharField(default=compensation.models.default_currency, max_length=3)),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                ("pair_count", models.PositiveIntegerField(blank=True, null=True)),
                ("level", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("credited", "Credited"), ("cancelled", "Cancelled")], default="pending", max_length=10)),
                ("idempotency_key", models.CharField(blank=True, max_length=200, null=True)),
                ("credit_after", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("credited_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="income_transactions", to="compensation.company")),
                ("member", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="income_transactions", to="compensation.member")),
                ("related_member", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="+", to="compensation.member")),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.AddConstraint(
            model_name="incometransaction",
            constraint=models.UniqueConstraint(fields=("company", "idempotency_key"), name="uniq_income_idempotency"),
        ),
        migrations.AddIndex(
            model_name="incometransaction",
            index=models.Index(fields=["member", "income_type", "created_at"], name="income_member_type_idx"),
        ),
        migrations.AddIndex(
            model_name="incometransaction",
            index=models.Index(fields=["company", "status"], name="income_company_status_idx"),
        ),
        migrations.CreateModel(
            name="Wallet",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("available_balance", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("locked_balance", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("total_earned", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("total_withdrawn", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=14)),
                ("currency", models.CharField(default=compensation.models.default_currency, max_length=3)),
                ("is_frozen", models.BooleanField(default=False)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="wallets", to="compensation.company")),
                ("member", models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name="wallet", to="compensation.member")),
            ],
        ),
        migrations.CreateModel(
            name="CompensationEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("event_id", models.CharField(max_length=100)),
                ("kind", models.CharField(choices=[("registration", "Registration"), ("purchase", "Purchase")], max_length=20)),
                ("bv", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("sponsor_member_id", models.CharField(blank=True, default="", max_length=64)),
                ("requested_side", models.CharField(blank=True, default="", max_length=5)),
                ("volume_applied", models.BooleanField(default=False)),
                ("status", models.CharField(choices=[("received", "Received"), ("processing", "Processing"), ("completed", "Completed"), ("failed", "Failed")], default="received", max_length=10)),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("error", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="events", to="compensation.company")),
                ("member", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="events", to="compensation.member")),
            ],
        ),
        migrations.AddConstraint(
            model_name="compensationevent",
            constraint=models.UniqueConstraint(fields=("company", "event_id"), name="uniq_company_event"),
        ),
        migrations.CreateModel(
            name="JobLock",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("job_type", models.CharField(max_length=50)),
                ("run_key", models.CharField(max_length=64)),
                ("status", models.CharField(choices=[("processing", "Processing"), ("completed", "Completed"), ("failed", "Failed")], default="processing", max_length=12)),
                ("execution_count", models.PositiveIntegerField(default=0)),
                ("error", models.TextField(blank=True, default="")),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("finished_at", models.DateTimeField(blank=True, null=True)),
                ("company", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="job_locks", to="compensation.company")),
            ],
        ),
        migrations.AddConstraint(
            model_name="joblock",
            constraint=models.UniqueConstraint(fields=("company", "job_type", "run_key"), name="uniq_job_lock"),
        ),
    ]
