from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy import select

from bottle_return.config import settings
from bottle_return.create_admin import upsert_admin
from bottle_return.main import app
from bottle_return.models import AuditLog, Incident, IncidentStatus, Principal, utc_now
from bottle_return.security.passwords import hash_password
from bottle_return.sync_locations import SyncAlreadyRunningError, SyncResult
from support import DatabaseTestCase

ADMIN_PASSWORD = 'correct horse battery'


class ApiTestCase(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.client = TestClient(app)

    def csrf_headers(self) -> dict[str, str]:
        if 'csrf_token' not in self.client.cookies:
            self.client.get('/healthz')
        return {'X-CSRF-Token': self.client.cookies['csrf_token']}

    def login(self, username: str, password: str):
        return self.client.post(
            '/api/login',
            json={'username': username, 'password': password},
            headers=self.csrf_headers(),
        )

    def create_admin(self, username: str = 'beheer') -> None:
        with self.session_factory() as db:
            upsert_admin(db, username=username, password=ADMIN_PASSWORD)
            db.commit()


class PublicLocationApiTests(ApiTestCase):
    def test_list_resolves_status_at_read_time(self) -> None:
        dam = self.add_location()
        self.add_location(
            google_place_id='PLACE-2',
            name='Jumbo Delft',
            chain='Jumbo',
            city='Delft',
            business_status='CLOSED_TEMPORARILY',
        )
        self.add_incident(dam, created_at=utc_now() - timedelta(hours=1))

        response = self.client.get('/api/locations')

        self.assertEqual(response.status_code, 200)
        by_name = {row['name']: row for row in response.json()}
        self.assertEqual(by_name['Albert Heijn Dam']['status'], 'closed')
        self.assertEqual(by_name['Albert Heijn Dam']['active_incidents'], 1)
        self.assertEqual(by_name['Jumbo Delft']['status'], 'closed')
        self.assertTrue(by_name['Albert Heijn Dam']['google_maps_url'].startswith('https://www.google.com/maps/search/'))

    def test_open_location_without_incidents(self) -> None:
        location_id = self.add_location()
        response = self.client.get(f'/api/locations/{location_id}')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'open')
        self.assertEqual(response.headers['X-Content-Type-Options'], 'nosniff')

    def test_bounds_filter(self) -> None:
        self.add_location()
        self.add_location(google_place_id='PLACE-2', name='Jumbo Groningen', latitude=53.2139, longitude=6.5683)

        response = self.client.get('/api/locations', params={'north': 53.5, 'south': 53.0, 'east': 7.0, 'west': 6.0})

        self.assertEqual([row['name'] for row in response.json()], ['Jumbo Groningen'])

    def test_partial_bounds_are_rejected(self) -> None:
        response = self.client.get('/api/locations', params={'north': 53.5})
        self.assertEqual(response.status_code, 400)

    def test_search(self) -> None:
        self.add_location()
        self.add_location(google_place_id='PLACE-2', name='Lidl Eindhoven', chain='Lidl', city='Eindhoven')

        response = self.client.get('/api/locations/search', params={'q': 'eindhoven'})

        self.assertEqual([row['name'] for row in response.json()], ['Lidl Eindhoven'])

    def test_unknown_location_is_404(self) -> None:
        self.assertEqual(self.client.get('/api/locations/999').status_code, 404)

    def test_sync_metadata_before_first_sync(self) -> None:
        response = self.client.get('/api/sync-metadata')
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json()['last_sync'])


class IncidentReportApiTests(ApiTestCase):
    def test_report_without_contact_details(self) -> None:
        location_id = self.add_location()

        response = self.client.post('/api/incidents', json={'location_id': location_id, 'kind': 'machine_full'})

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body['status'], 'open')
        self.assertEqual(body['priority'], 'medium')
        self.assertIsNone(body['reporter_email'])

    def test_report_for_unknown_location(self) -> None:
        response = self.client.post('/api/incidents', json={'location_id': 12345, 'kind': 'other'})
        self.assertEqual(response.status_code, 404)

    def test_report_with_unknown_kind(self) -> None:
        location_id = self.add_location()
        response = self.client.post('/api/incidents', json={'location_id': location_id, 'kind': 'on_fire'})
        self.assertEqual(response.status_code, 422)


class AdminApiTests(ApiTestCase):
    def test_anonymous_is_401(self) -> None:
        response = self.client.get('/api/admin/stats')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.headers['X-Robots-Tag'], 'noindex, nofollow, noarchive')
        self.assertEqual(response.headers['Cache-Control'], 'no-store')

    def test_non_admin_is_403(self) -> None:
        with self.session_factory() as db:
            db.add(Principal(username='viewer', password_hash=hash_password(ADMIN_PASSWORD), role='viewer', active=True))
            db.commit()

        self.assertEqual(self.login('viewer', ADMIN_PASSWORD).status_code, 200)
        response = self.client.get('/api/admin/stats')

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['detail'], 'Access denied. Admin role required.')

    def test_wrong_password_is_401(self) -> None:
        self.create_admin()
        self.assertEqual(self.login('beheer', 'not the password').status_code, 401)
        self.assertEqual(self.client.get('/api/me').status_code, 401)

    def test_login_requires_csrf_header(self) -> None:
        self.create_admin()
        self.client.get('/healthz')
        response = self.client.post('/api/login', json={'username': 'beheer', 'password': ADMIN_PASSWORD})
        self.assertEqual(response.status_code, 403)

    def test_admin_session_flow(self) -> None:
        self.create_admin()
        location_id = self.add_location()
        open_ids = [self.add_incident(location_id) for _ in range(3)]
        resolved_id = self.add_incident(location_id, status=IncidentStatus.RESOLVED)

        login = self.login('beheer', ADMIN_PASSWORD)
        self.assertEqual(login.status_code, 200)
        self.assertEqual(login.json()['role'], settings.admin_role)
        self.assertEqual(self.client.get('/api/me').json()['username'], 'beheer')

        stats = self.client.get('/api/admin/stats').json()
        self.assertEqual(stats['total_locations'], 1)
        self.assertEqual(stats['active_incidents'], 3)
        self.assertEqual(stats['resolved_incidents'], 1)

        summaries = self.client.get('/api/admin/incident-summaries').json()
        self.assertEqual(summaries[0]['active_incidents'], 3)

        response = self.client.post(
            '/api/admin/incidents/bulk-resolve',
            json={'incident_ids': [*open_ids, resolved_id], 'admin_note': 'fixed'},
            headers=self.csrf_headers(),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'resolved_count': 3})

        response = self.client.patch(
            f'/api/admin/incidents/{open_ids[0]}',
            json={'status': 'investigating'},
            headers=self.csrf_headers(),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'investigating')
        self.assertIsNone(response.json()['resolved_at'])

        incidents = self.client.get('/api/admin/incidents', params={'status': 'investigating'}).json()
        self.assertEqual([row['id'] for row in incidents], [open_ids[0]])
        self.assertEqual(incidents[0]['location_name'], 'Albert Heijn Dam')

        with self.session_factory() as db:
            actions = db.execute(select(AuditLog.action).order_by(AuditLog.id)).scalars().all()
            self.assertEqual(db.get(Incident, open_ids[1]).admin_note, 'fixed')
        self.assertEqual(actions, ['AUTH_LOGIN', 'INCIDENTS_BULK_RESOLVED', 'INCIDENT_UPDATED'])

        self.assertEqual(self.client.post('/api/logout', headers=self.csrf_headers()).status_code, 204)
        self.assertEqual(self.client.get('/api/admin/stats').status_code, 401)

    def test_mutation_without_csrf_header_is_403(self) -> None:
        self.create_admin()
        incident_id = self.add_incident(self.add_location())
        self.login('beheer', ADMIN_PASSWORD)

        response = self.client.post('/api/admin/incidents/bulk-resolve', json={'incident_ids': [incident_id]})

        self.assertEqual(response.status_code, 403)
        with self.session_factory() as db:
            self.assertEqual(db.get(Incident, incident_id).status, IncidentStatus.OPEN)

    def test_patch_unknown_incident_is_404(self) -> None:
        self.create_admin()
        self.login('beheer', ADMIN_PASSWORD)
        response = self.client.patch('/api/admin/incidents/999', json={'status': 'closed'}, headers=self.csrf_headers())
        self.assertEqual(response.status_code, 404)


class SyncWebhookTests(ApiTestCase):
    def test_missing_token_is_401(self) -> None:
        with patch.object(settings, 'sync_token', 'webhook-secret'):
            response = self.client.post('/api/sync')
        self.assertEqual(response.status_code, 401)

    def test_unconfigured_token_is_401(self) -> None:
        with patch.object(settings, 'sync_token', None):
            response = self.client.post('/api/sync', headers={'Authorization': 'Bearer anything'})
        self.assertEqual(response.status_code, 401)

    @patch('bottle_return.routers.sync.sync_locations')
    def test_valid_token_runs_sync(self, sync_locations) -> None:
        sync_locations.return_value = SyncResult(fetched=4, unique=3, inserted=2, updated=1, failed_chains=['Lidl'])

        with patch.object(settings, 'sync_token', 'webhook-secret'):
            response = self.client.post('/api/sync', headers={'Authorization': 'Bearer webhook-secret'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['inserted'], 2)
        self.assertEqual(response.json()['failed_chains'], ['Lidl'])
        with self.session_factory() as db:
            audit = db.execute(select(AuditLog)).scalar_one()
        self.assertEqual(audit.action, 'LOCATIONS_SYNCED')
        self.assertIsNone(audit.actor_principal_id)

    @patch('bottle_return.routers.sync.sync_locations', side_effect=SyncAlreadyRunningError('busy'))
    def test_overlapping_run_is_409(self, _sync_locations) -> None:
        with patch.object(settings, 'sync_token', 'webhook-secret'):
            response = self.client.post('/api/sync', headers={'Authorization': 'Bearer webhook-secret'})
        self.assertEqual(response.status_code, 409)
