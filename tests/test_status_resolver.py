from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from bottle_return.models import IncidentStatus, LocationStatus
from bottle_return.services.status_resolver import (
    has_recent_active_incident,
    open_now_from_hours,
    resolve_location_status,
    resolve_status,
)

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class ResolveStatusTests(unittest.TestCase):
    def test_business_closure_wins_over_everything(self) -> None:
        for business_status in ('CLOSED_PERMANENTLY', 'CLOSED_TEMPORARILY'):
            for has_recent_incident in (True, False):
                for open_now in (True, False, None):
                    with self.subTest(business_status=business_status, incident=has_recent_incident, open_now=open_now):
                        self.assertEqual(
                            resolve_status(
                                business_status=business_status,
                                has_recent_incident=has_recent_incident,
                                open_now=open_now,
                            ),
                            LocationStatus.CLOSED,
                        )

    def test_recent_incident_overrides_open_hours(self) -> None:
        status = resolve_status(business_status='OPERATIONAL', has_recent_incident=True, open_now=True)
        self.assertEqual(status, LocationStatus.CLOSED)

    def test_open_now_passes_through(self) -> None:
        self.assertEqual(
            resolve_status(business_status='OPERATIONAL', has_recent_incident=False, open_now=True),
            LocationStatus.OPEN,
        )
        self.assertEqual(
            resolve_status(business_status=None, has_recent_incident=False, open_now=False),
            LocationStatus.CLOSED,
        )

    def test_no_information_defaults_to_closed(self) -> None:
        status = resolve_status(business_status=None, has_recent_incident=False, open_now=None)
        self.assertEqual(status, LocationStatus.CLOSED)


class OpenNowFromHoursTests(unittest.TestCase):
    def test_reads_explicit_flag(self) -> None:
        self.assertTrue(open_now_from_hours({'open_now': True}))
        self.assertFalse(open_now_from_hours({'open_now': False, 'periods': []}))

    def test_missing_or_non_boolean_flag_is_unknown(self) -> None:
        self.assertIsNone(open_now_from_hours(None))
        self.assertIsNone(open_now_from_hours({'periods': []}))
        self.assertIsNone(open_now_from_hours({'open_now': 'yes'}))


class RecentIncidentTests(unittest.TestCase):
    def test_only_active_incidents_inside_window_count(self) -> None:
        incidents = [
            SimpleNamespace(status=IncidentStatus.RESOLVED, created_at=NOW - timedelta(hours=1)),
            SimpleNamespace(status=IncidentStatus.CLOSED, created_at=NOW - timedelta(minutes=5)),
            SimpleNamespace(status=IncidentStatus.OPEN, created_at=NOW - timedelta(hours=25)),
        ]
        self.assertFalse(has_recent_active_incident(incidents, now=NOW))

        incidents.append(SimpleNamespace(status=IncidentStatus.INVESTIGATING, created_at=NOW - timedelta(hours=23)))
        self.assertTrue(has_recent_active_incident(incidents, now=NOW))

    def test_naive_timestamps_are_treated_as_utc(self) -> None:
        incident = SimpleNamespace(status='open', created_at=datetime(2026, 10, 18, 11, 0))
        self.assertTrue(has_recent_active_incident([incident], now=NOW))

    def test_read_time_variant_applies_same_priority(self) -> None:
        recent = [SimpleNamespace(status=IncidentStatus.OPEN, created_at=NOW - timedelta(hours=2))]
        self.assertEqual(
            resolve_location_status(business_status='OPERATIONAL', open_now=True, incidents=recent, now=NOW),
            LocationStatus.CLOSED,
        )
        self.assertEqual(
            resolve_location_status(business_status='OPERATIONAL', open_now=True, incidents=[], now=NOW),
            LocationStatus.OPEN,
        )
        self.assertEqual(
            resolve_location_status(business_status='OPERATIONAL', open_now=None, incidents=[], now=NOW),
            LocationStatus.CLOSED,
        )


if __name__ == '__main__':
    unittest.main()
