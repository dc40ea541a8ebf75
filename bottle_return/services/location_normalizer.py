"""Turn raw place search results into location rows.

Address parsing is best effort: formatted addresses are free text and the
fallbacks below always produce a value, never an error.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import quote_plus

from bottle_return.models import LocationStatus
from bottle_return.services.places_provider import PlaceResult
from bottle_return.services.status_resolver import open_now_from_hours, resolve_status

UNKNOWN_CHAIN = 'Onbekend'
UNKNOWN_ADDRESS = 'Onbekend adres'
UNKNOWN_CITY = 'Onbekende stad'

POSTAL_CODE_RE = re.compile(r'\b(\d{4}\s?[A-Z]{2})\b')
WS_RE = re.compile(r'\s+')
DIGIT_RE = re.compile(r'\d')
COUNTRY_NAMES = {'Netherlands', 'Nederland', 'The Netherlands'}

WEEKDAYS = ('sunday', 'monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday')
CLOSED_ALL_DAY = 'Closed'
OPEN_ALL_DAY = '24 hours'


@dataclass(frozen=True)
class BoundingBox:
    north: float
    south: float
    east: float
    west: float

    def contains(self, latitude: float, longitude: float) -> bool:
        return self.south <= latitude <= self.north and self.west <= longitude <= self.east


@dataclass(frozen=True)
class ParsedAddress:
    street: str
    postal_code: str
    city: str


@dataclass(frozen=True)
class NormalizedLocation:
    google_place_id: str | None
    name: str
    chain: str
    address: str
    city: str
    postal_code: str
    latitude: float
    longitude: float
    business_status: str | None
    open_now: bool | None
    status: LocationStatus
    opening_hours: dict[str, str] | None

    @property
    def dedupe_key(self) -> str | tuple[str, str, str]:
        if self.google_place_id:
            return self.google_place_id
        return (self.name, self.address, self.city)


def chain_for_name(place_name: str, chains: list[str]) -> str:
    lowered = place_name.lower()
    for chain in chains:
        if chain.lower() in lowered:
            return chain
    return UNKNOWN_CHAIN


def _looks_like_city(value: str) -> bool:
    return not DIGIT_RE.search(value) and 2 < len(value) < 50


def _city_from_place_name(place_name: str) -> str:
    # Store names like "Albert Heijn Amsterdam" often end with the city.
    name_parts = place_name.split(' ')
    if len(name_parts) > 2:
        candidate = name_parts[-1]
        if len(candidate) > 3 and not DIGIT_RE.search(candidate):
            return candidate
    return ''


def parse_address(formatted_address: str, place_name: str = '') -> ParsedAddress:
    parts = formatted_address.split(', ') if formatted_address else []
    postal_code = ''
    city = ''

    for idx in range(len(parts) - 1, -1, -1):
        part = parts[idx]
        match = POSTAL_CODE_RE.search(part)
        if not match:
            continue
        postal_code = WS_RE.sub(' ', match.group(1))
        city = (part[: match.start()] + part[match.end() :]).strip()
        del parts[idx]
        break

    parts = [part for part in parts if part.strip() not in COUNTRY_NAMES]

    if not city and parts and _looks_like_city(parts[-1]):
        city = parts.pop()

    street = ', '.join(parts).strip()

    if not city and place_name:
        city = _city_from_place_name(place_name)

    if not street and formatted_address:
        first_part = formatted_address.split(',')[0].strip()
        if first_part and first_part != place_name:
            street = first_part

    return ParsedAddress(
        street=street or UNKNOWN_ADDRESS,
        postal_code=postal_code.strip(),
        city=city.strip() or UNKNOWN_CITY,
    )


def format_time(value: str | None) -> str | None:
    if not value or len(value) != 4:
        return value
    return f'{value[:2]}:{value[2:]}'


def parse_opening_hours(opening_hours: dict | None) -> dict[str, str] | None:
    periods = (opening_hours or {}).get('periods')
    if not periods:
        return None

    table = {day: CLOSED_ALL_DAY for day in WEEKDAYS}
    for period in periods:
        opening = period.get('open') or {}
        day_index = opening.get('day')
        if not isinstance(day_index, int) or not 0 <= day_index < len(WEEKDAYS):
            continue
        closing = period.get('close')
        if closing:
            table[WEEKDAYS[day_index]] = f"{format_time(opening.get('time'))}-{format_time(closing.get('time'))}"
        else:
            table[WEEKDAYS[day_index]] = OPEN_ALL_DAY
    return table


def normalize_place(place: PlaceResult, *, chains: list[str], has_recent_incident: bool) -> NormalizedLocation:
    parsed = parse_address(place.formatted_address, place.name)
    open_now = open_now_from_hours(place.opening_hours)
    return NormalizedLocation(
        google_place_id=place.place_id,
        name=place.name,
        chain=chain_for_name(place.name, chains),
        address=parsed.street,
        city=parsed.city,
        postal_code=parsed.postal_code,
        latitude=place.latitude,
        longitude=place.longitude,
        business_status=place.business_status,
        open_now=open_now,
        status=resolve_status(
            business_status=place.business_status,
            has_recent_incident=has_recent_incident,
            open_now=open_now,
        ),
        opening_hours=parse_opening_hours(place.opening_hours),
    )


def deduplicate(records: list[NormalizedLocation]) -> list[NormalizedLocation]:
    seen: set = set()
    unique: list[NormalizedLocation] = []
    for record in records:
        key = record.dedupe_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique


def google_maps_url(name: str, address: str, postal_code: str, city: str) -> str:
    query = ' '.join(part for part in (name, address, postal_code, city) if part)
    return f'https://www.google.com/maps/search/?api=1&query={quote_plus(query)}'
