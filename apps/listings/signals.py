"""Model signal handlers for listings cache invalidation."""

from django.db.models.signals import m2m_changed, post_delete, post_save  # type: ignore
from django.dispatch import receiver  # type: ignore

from .cache import invalidate_search_cache
from .models import Listing, ListingAvailability


@receiver([post_save, post_delete], sender=Listing)
@receiver([post_save, post_delete], sender=ListingAvailability)
@receiver(m2m_changed, sender=Listing.amenities.through)
def listings_cache_invalidator(**_: object) -> None:
    """Invalidate cached search results whenever listing data changes."""
    invalidate_search_cache()
