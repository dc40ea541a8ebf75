from __future__ import annotations

from functools import lru_cache

from bottle_return.config import settings
from bottle_return.services.google_places_provider import GooglePlacesProvider
from bottle_return.services.mock_places_provider import MockPlacesProvider
from bottle_return.services.places_provider import PlacesProvider


@lru_cache(maxsize=1)
def get_places_provider() -> PlacesProvider:
    provider = settings.places_provider.strip().lower()
    if provider == 'mock':
        return MockPlacesProvider()
    return GooglePlacesProvider()
