from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class PlacesApiError(RuntimeError):
    pass


@dataclass(frozen=True)
class PlaceResult:
    place_id: str | None
    name: str
    formatted_address: str
    latitude: float
    longitude: float
    business_status: str | None = None
    opening_hours: dict | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> PlaceResult:
        location = (payload.get('geometry') or {}).get('location') or {}
        return cls(
            place_id=payload.get('place_id') or None,
            name=(payload.get('name') or '').strip(),
            formatted_address=(payload.get('formatted_address') or '').strip(),
            latitude=float(location.get('lat', 0.0)),
            longitude=float(location.get('lng', 0.0)),
            business_status=payload.get('business_status'),
            opening_hours=payload.get('opening_hours'),
        )


class PlacesProvider(Protocol):
    def search_text(self, query: str, *, place_type: str, region: str) -> list[PlaceResult]: ...
