from __future__ import annotations

from bottle_return.services.places_provider import PlaceResult

WEEKDAY_PERIODS = [
    {'open': {'day': day, 'time': '0800'}, 'close': {'day': day, 'time': '2200'}}
    for day in range(1, 7)
]


class MockPlacesProvider:
    def __init__(self) -> None:
        self.places_by_chain = {
            'albert heijn': [
                ('MOCK-AH-001', 'Albert Heijn Dam', 'Nieuwezijds Voorburgwal 226, 1012 RR Amsterdam, Netherlands', 52.3731, 4.8922),
                ('MOCK-AH-002', 'Albert Heijn Utrecht Centraal', 'Stationshal 5, 3511 CE Utrecht, Netherlands', 52.0894, 5.1101),
            ],
            'jumbo': [
                ('MOCK-JU-001', 'Jumbo Rotterdam Centrum', 'Binnenwegplein 20, 3012 KA Rotterdam, Netherlands', 51.9198, 4.4749),
                ('MOCK-JU-002', 'Jumbo Groningen', 'Herestraat 80, 9711 LM Groningen, Netherlands', 53.2139, 6.5683),
            ],
            'lidl': [
                ('MOCK-LI-001', 'Lidl Eindhoven', 'Vestdijk 50, 5611 CC Eindhoven, Netherlands', 51.4393, 5.4806),
            ],
        }

    def _chain_key(self, query: str) -> str | None:
        lowered = query.lower()
        for key in self.places_by_chain:
            if key in lowered:
                return key
        return None

    def search_text(self, query: str, *, place_type: str, region: str) -> list[PlaceResult]:
        chain_key = self._chain_key(query)
        if chain_key is None:
            return []
        return [
            PlaceResult(
                place_id=place_id,
                name=name,
                formatted_address=formatted_address,
                latitude=latitude,
                longitude=longitude,
                business_status='OPERATIONAL',
                opening_hours={'open_now': True, 'periods': WEEKDAY_PERIODS},
            )
            for place_id, name, formatted_address, latitude, longitude in self.places_by_chain[chain_key]
        ]
