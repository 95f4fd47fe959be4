"""Client singletons for external API interactions."""
from salon_research.clients.perplexity_client import PerplexityClient
from salon_research.clients.places_client import PlacesClient
from salon_research.clients.thumbnail_client import ThumbnailClient

__all__ = ["PerplexityClient", "PlacesClient", "ThumbnailClient"]
