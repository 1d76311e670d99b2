"""Keep the listing rating in sync with its reviews."""

from django.db.models.signals import post_delete, post_save  # type: ignore
from django.dispatch import receiver  # type: ignore

from apps.listings.models import Listing

from .models import Review


@receiver([post_save, post_delete], sender=Review)
def refresh_listing_rating(sender, instance: Review, **kwargs) -> None:  # type: ignore
    update_fields = kwargs.get("update_fields")
    if update_fields and not {"rating", "is_visible"} & set(update_fields):
        return
    # Cascading listing deletes remove the reviews first.
    listing = Listing.objects.filter(pk=instance.listing_id).first()
    if listing is not None:
        listing.refresh_rating()
