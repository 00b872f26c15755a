# compensation/tests/helpers.py
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

from compensation.mlm.placement import place
from compensation.mlm.tree_store import get_node
from compensation.mlm.volume import apply_volume_delta
from compensation.models import Company, Member, MLMConfig


def utc(*args):
    return datetime(*args, tzinfo=dt_timezone.utc)


def make_company(company_id="acme", tz="UTC", **config):
    company = Company.objects.create(company_id=company_id, name=company_id.title(), timezone=tz)
    MLMConfig.objects.create(company=company, **config)
    return company


def update_config(company_id, **changes):
    config = MLMConfig.objects.get(company_id=company_id)
    for field, value in changes.items():
        setattr(config, field, value)
    config.save()
    return config


def join(company_id, member_id, sponsor_id=None, side=None, bv=0, now=None):
    """Register + place + aggregate, without the income steps."""
    sponsor = Member.objects.get(company_id=company_id, member_id=sponsor_id) if sponsor_id else None
    Member.objects.create(company_id=company_id, member_id=member_id, sponsor=sponsor)
    placement = place(company_id, member_id, sponsor_id, requested_side=side)
    apply_volume_delta(company_id, member_id, Decimal(bv), count_delta=1, now=now)
    return placement


def node(company_id, member_id):
    return get_node(company_id, member_id)
