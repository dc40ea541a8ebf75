from __future__ import annotations

import unittest
from datetime import datetime

from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

from bottle_return.db import SessionLocal
from bottle_return.models import Base, Incident, IncidentKind, IncidentStatus, Location, LocationStatus, utc_now
from bottle_return.services.places_provider import PlaceResult


def make_engine():
    engine = create_engine(
        'sqlite+pysqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )

    # pysqlite needs explicit BEGIN for SAVEPOINT support.
    @event.listens_for(engine, 'connect')
    def _disable_driver_transactions(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, 'begin')
    def _emit_begin(conn):
        conn.exec_driver_sql('BEGIN')

    Base.metadata.create_all(engine)
    return engine


class DatabaseTestCase(unittest.TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.engine = make_engine()
        self._previous_bind = SessionLocal.kw.get('bind')
        SessionLocal.configure(bind=self.engine)
        self.session_factory = SessionLocal

    def tearDown(self) -> None:
        SessionLocal.configure(bind=self._previous_bind)
        self.engine.dispose()
        super().tearDown()

    def add_location(self, **overrides) -> int:
        values = {
            'google_place_id': 'PLACE-1',
            'name': 'Albert Heijn Dam',
            'chain': 'Albert Heijn',
            'address': 'Nieuwezijds Voorburgwal 226',
            'city': 'Amsterdam',
            'postal_code': '1012 RR',
            'latitude': 52.3731,
            'longitude': 4.8922,
            'business_status': 'OPERATIONAL',
            'open_now': True,
            'status': LocationStatus.OPEN,
        }
        values.update(overrides)
        with self.session_factory() as db:
            location = Location(**values)
            db.add(location)
            db.commit()
            return location.id

    def add_incident(
        self,
        location_id: int,
        *,
        status: IncidentStatus = IncidentStatus.OPEN,
        kind: IncidentKind = IncidentKind.MACHINE_BROKEN,
        created_at: datetime | None = None,
        admin_note: str | None = None,
    ) -> int:
        created_at = created_at or utc_now()
        with self.session_factory() as db:
            incident = Incident(
                location_id=location_id,
                kind=kind,
                status=status,
                admin_note=admin_note,
                created_at=created_at,
                updated_at=created_at,
            )
            db.add(incident)
            db.commit()
            return incident.id


def make_place(
    place_id: str | None,
    name: str,
    formatted_address: str = 'Dorpsstraat 12, 1234 AB Voorbeeldstad, Netherlands',
    *,
    latitude: float = 52.37,
    longitude: float = 4.89,
    business_status: str | None = 'OPERATIONAL',
    open_now: bool | None = True,
) -> PlaceResult:
    opening_hours = None if open_now is None else {'open_now': open_now}
    return PlaceResult(
        place_id=place_id,
        name=name,
        formatted_address=formatted_address,
        latitude=latitude,
        longitude=longitude,
        business_status=business_status,
        opening_hours=opening_hours,
    )
