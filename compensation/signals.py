# compensation/signals.py
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import Member, Wallet


@receiver(post_save, sender=Member)
def create_wallet_for_new_member(sender, instance, created, **kwargs):
    if not created:
        return

    Wallet.objects.get_or_create(
        member=instance,
        defaults={"company_id": instance.company_id},
    )
