# ==========================================================
# compensation/config.py
# Tenant configuration store (read-only snapshot per pipeline run)
# ==========================================================
from __future__ import annotations

import logging
from dataclasses import dataclass
from zoneinfo import ZoneInfo

from django.conf import settings
from django.core.cache import cache
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver
from django.utils import timezone

from compensation.exceptions import ConfigurationError
from compensation.models import Company, MLMConfig, Rank, SponsorMatchingLevel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfigSnapshot:
    company: Company
    config: MLMConfig
    sponsor_levels: tuple   # SponsorMatchingLevel, ascending level
    ranks: tuple            # Rank, descending level

    @property
    def company_id(self) -> str:
        return self.company.company_id

    @property
    def income_paused(self) -> bool:
        return self.company.income_paused

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.company.timezone)


def _cache_key(company_id: str) -> str:
    return f"compensation:mlm-config:{company_id}"


def get_mlm_config(company_id: str) -> ConfigSnapshot:
    """
    getMLMConfig(companyId) for the engine.
    Callers load it once and pass the snapshot down the pipeline.
    """
    ttl = settings.COMPENSATION.get("CONFIG_CACHE_SECONDS", 0)
    if ttl:
        cached = cache.get(_cache_key(company_id))
        if cached is not None:
            return cached

    try:
        config = MLMConfig.objects.select_related("company").get(company_id=company_id)
    except MLMConfig.DoesNotExist:
        raise ConfigurationError(f"no MLM config for company {company_id}")

    snapshot = ConfigSnapshot(
        company=config.company,
        config=config,
        sponsor_levels=tuple(SponsorMatchingLevel.objects.filter(config=config).order_by("level")),
        ranks=tuple(Rank.objects.filter(company_id=company_id).order_by("-level")),
    )
    if ttl:
        cache.set(_cache_key(company_id), snapshot, ttl)
    return snapshot


def invalidate_mlm_config(company_id: str) -> None:
    cache.delete(_cache_key(company_id))


# ----------------------------------------------------------
# Income distribution pause / resume
# ----------------------------------------------------------
def pause_income_distribution(company_id: str, reason: str) -> None:
    Company.objects.filter(company_id=company_id).update(
        income_paused=True, paused_reason=reason, paused_at=timezone.now()
    )
    invalidate_mlm_config(company_id)
    logger.warning("Income distribution paused for %s: %s", company_id, reason)


def resume_income_distribution(company_id: str) -> None:
    Company.objects.filter(company_id=company_id).update(
        income_paused=False, paused_reason="", paused_at=None
    )
    invalidate_mlm_config(company_id)
    logger.info("Income distribution resumed for %s", company_id)


# ----------------------------------------------------------
# Cache invalidation on config writes
# ----------------------------------------------------------
@receiver([post_save, post_delete], sender=Company)
def _company_changed(sender, instance, **kwargs):
    invalidate_mlm_config(instance.company_id)


@receiver([post_save, post_delete], sender=MLMConfig)
@receiver([post_save, post_delete], sender=Rank)
def _config_changed(sender, instance, **kwargs):
    invalidate_mlm_config(instance.company_id)


@receiver([post_save, post_delete], sender=SponsorMatchingLevel)
def _sponsor_level_changed(sender, instance, **kwargs):
    invalidate_mlm_config(instance.config.company_id)
