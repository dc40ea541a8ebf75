from __future__ import annotations

import json
import logging
from http.client import HTTPException
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from bottle_return.config import settings
from bottle_return.services.places_provider import PlaceResult, PlacesApiError

logger = logging.getLogger(__name__)

TEXT_SEARCH_FIELDS = 'place_id,name,formatted_address,geometry,business_status,opening_hours'
SUCCESS_STATUSES = {'OK', 'ZERO_RESULTS'}


class GooglePlacesProvider:
    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        timeout_seconds: int | None = None,
    ) -> None:
        api_key = api_key or settings.google_places_api_key
        if not api_key:
            raise ValueError('GOOGLE_PLACES_API_KEY is required when PLACES_PROVIDER=google')

        self.api_key = api_key
        self.base_url = (base_url or settings.google_places_base_url).rstrip('/')
        self.timeout_seconds = timeout_seconds or settings.google_places_timeout_seconds

    def _get(self, path: str, params: dict[str, str]) -> dict:
        query = urlencode({**params, 'key': self.api_key})
        req = Request(url=f'{self.base_url}{path}?{query}', headers={'Accept': 'application/json'}, method='GET')
        try:
            with urlopen(req, timeout=self.timeout_seconds) as response:
                parsed = json.loads(response.read().decode('utf-8'))
        except HTTPError as exc:
            body = exc.read().decode('utf-8', errors='ignore') if exc.fp else ''
            raise PlacesApiError(f'Places API error {exc.code} on {path}: {body}') from exc
        except URLError as exc:
            raise PlacesApiError(f'Places API network error on {path}: {exc.reason}') from exc
        except OSError as exc:
            raise PlacesApiError(f'Places API connection error on {path}: {exc}') from exc
        except HTTPException as exc:
            raise PlacesApiError(f'Places API response interrupted on {path}: {exc!r}') from exc
        except ValueError as exc:
            raise PlacesApiError(f'Places API returned invalid JSON on {path}') from exc

        if not isinstance(parsed, dict):
            raise PlacesApiError(f'Places API returned an unexpected payload on {path}')

        status = parsed.get('status')
        if status == 'REQUEST_DENIED':
            raise PlacesApiError(
                f"Places API access denied: {parsed.get('error_message') or 'check API key and permissions'}"
            )
        if status not in SUCCESS_STATUSES:
            raise PlacesApiError(f"Places API status {status}: {parsed.get('error_message') or 'unknown error'}")
        return parsed

    def search_text(self, query: str, *, place_type: str, region: str) -> list[PlaceResult]:
        logger.debug('Places text search: %s', query)
        payload = self._get(
            '/textsearch/json',
            {
                'query': query,
                'type': place_type,
                'region': region,
                'fields': TEXT_SEARCH_FIELDS,
            },
        )
        if payload.get('status') == 'ZERO_RESULTS':
            return []

        results: list[PlaceResult] = []
        for raw in payload.get('results', []):
            if not (raw.get('geometry') or {}).get('location'):
                logger.warning('Skipping place without coordinates: %s', raw.get('name'))
                continue
            try:
                results.append(PlaceResult.from_payload(raw))
            except (TypeError, ValueError):
                logger.warning('Skipping place with malformed coordinates: %s', raw.get('name'))
        return results
