"""
HTTP tests for the auth, public/team API and admin blueprints.
"""

import pytest
from flask_login import login_user

from factories import (
    PASSWORD,
    login,
    make_athlete,
    make_event,
    make_referee,
    make_team,
    make_tournament,
    make_user,
)
from pfms.extensions import db, rate_limit_key
from pfms.models import (
    AuditLog,
    Gender,
    Registration,
    RegistrationStatus,
    TournamentDivision,
    User,
    WeightClass,
)


@pytest.fixture
def seed(app):
    """Admin, two teams, an event with open and juniors tournaments."""
    with app.app_context():
        admin = make_user()
        north = make_team('norte')
        south = make_team('sur')
        event = make_event()
        open_t = make_tournament(event)
        juniors = make_tournament(event, 'Juniors Clásico', division=TournamentDivision.JUNIORS)
        lucia = make_athlete(north, 'Lucía Gómez', '40111222', 2008, Gender.F)
        rival = make_athlete(south, 'Elena Ríos', '40111444', 1997, Gender.F)
        return {
            'admin': admin.id,
            'north_user': north.user_id,
            'north': north.id,
            'south': south.id,
            'south_user': south.user_id,
            'event': event.id,
            'open': open_t.id,
            'juniors': juniors.id,
            'lucia': lucia.id,
            'rival': rival.id,
        }


class TestAuthentication:
    """Session login flows."""

    def test_login_success(self, client, seed):
        response = client.post('/auth/login', json={'email': 'Admin@Example.com', 'password': PASSWORD})

        assert response.status_code == 200
        assert response.json['user']['role'] == 'admin'

        me = client.get('/auth/me')
        assert me.status_code == 200
        assert me.json['user']['id'] == seed['admin']

    def test_login_wrong_password(self, app, client, seed):
        response = client.post('/auth/login', json={'email': 'admin@example.com', 'password': 'nope'})

        assert response.status_code == 401
        with app.app_context():
            assert AuditLog.query.filter_by(action='login_failed').count() == 1

    def test_login_invalid_payload(self, client, seed):
        response = client.post('/auth/login', json={'email': 'not-an-email', 'password': 'x'})
        assert response.status_code == 400
        assert response.json['error'] == 'ValidationError'

    def test_inactive_user_cannot_log_in(self, app, client, seed):
        with app.app_context():
            user = db.session.get(User, seed['admin'])
            user.active = False
            db.session.commit()

        response = client.post('/auth/login', json={'email': 'admin@example.com', 'password': PASSWORD})
        assert response.status_code == 403

    def test_team_login_exposes_team(self, client, seed):
        response = client.post('/auth/login', json={'email': 'norte@example.com', 'password': PASSWORD})
        assert response.json['user']['team_id'] == seed['north']

    def test_logout(self, client, seed):
        login(client, seed['admin'])

        assert client.post('/auth/logout').status_code == 200
        assert client.get('/auth/me').status_code == 401


class TestAccessControl:

    def test_anonymous_gets_401(self, client, seed):
        assert client.get('/api/v1/athletes').status_code == 401
        assert client.get('/admin/referees').status_code == 401

    def test_admin_cannot_use_team_endpoints(self, client, seed):
        login(client, seed['admin'])
        assert client.get('/api/v1/athletes').status_code == 403

    def test_team_cannot_use_admin_endpoints(self, client, seed):
        login(client, seed['north_user'])
        response = client.get('/admin/registrations')
        assert response.status_code == 403
        assert response.json['error'] == 'AuthorizationError'


class TestPublicAPI:

    def test_list_events(self, client, seed):
        response = client.get('/api/v1/events')

        assert response.status_code == 200
        assert [e['id'] for e in response.json['items']] == [seed['event']]

    def test_event_detail_includes_tournaments(self, client, seed):
        response = client.get(f"/api/v1/events/{seed['event']}")

        assert response.status_code == 200
        assert {t['id'] for t in response.json['event']['tournaments']} == {seed['open'], seed['juniors']}

    def test_unknown_event_is_404(self, client, seed):
        response = client.get('/api/v1/events/does-not-exist')
        assert response.status_code == 404
        assert response.json['error'] == 'NotFoundError'

    def test_eligibility_preview(self, client):
        response = client.post('/api/v1/eligibility', json={
            'gender': 'F',
            'birth_year': 2010,
            'division': 'juniors',
        })

        assert response.status_code == 200
        assert response.json['is_age_eligible'] is True
        assert response.json['athlete_division'] == 'subjunior'
        assert response.json['eligible_weight_classes'][0] == 'F_CAT43'
        assert len(response.json['eligible_weight_classes']) == 9

    @pytest.mark.parametrize('payload', [
        {'gender': 'X', 'birth_year': 2000, 'division': 'open'},
        {'gender': 'F', 'birth_year': 1850, 'division': 'open'},
        {'gender': 'F', 'birth_year': 2000, 'division': 'teen'},
    ])
    def test_eligibility_rejects_bad_input(self, client, payload):
        response = client.post('/api/v1/eligibility', json=payload)
        assert response.status_code == 400
        assert response.json['error'] == 'ValidationError'

    def test_public_referee_roster_hides_dni(self, app, client, seed):
        with app.app_context():
            referee = make_referee()
            referee_id = referee.id
        login(client, seed['admin'])
        client.put(f"/admin/events/{seed['event']}/referees", json={'referee_ids': [referee_id]})

        response = client.get(f"/api/v1/events/{seed['event']}/referees")

        assert response.json['items'] == [{'id': referee_id, 'full_name': 'Ana Torres', 'category': 'national'}]


class TestTeamAthletes:

    def test_create_athlete(self, client, seed):
        login(client, seed['north_user'])

        response = client.post('/api/v1/athletes', json={
            'full_name': 'Pedro Sosa',
            'dni': 40111333,
            'birth_year': 1995,
            'gender': 'm',
            'squat_best_kg': 180,
            'bench_best_kg': None,
        })

        assert response.status_code == 201
        athlete = response.json['athlete']
        assert athlete['dni'] == '40111333'
        assert athlete['gender'] == 'M'
        assert athlete['estimated_total_kg'] == 180

    def test_duplicate_dni_conflicts(self, client, seed):
        login(client, seed['north_user'])

        response = client.post('/api/v1/athletes', json={
            'full_name': 'Otra Persona',
            'dni': '40111222',
            'birth_year': 1995,
            'gender': 'F',
        })

        assert response.status_code == 409

    def test_invalid_athlete_payload(self, client, seed):
        login(client, seed['north_user'])

        response = client.post('/api/v1/athletes', json={'full_name': 'Al', 'dni': '1', 'birth_year': 1995})

        assert response.status_code == 400
        assert 'full_name' in response.json['message']

    def test_other_team_athlete_is_hidden(self, client, seed):
        login(client, seed['north_user'])

        assert client.get(f"/api/v1/athletes/{seed['rival']}").status_code == 404
        assert client.delete(f"/api/v1/athletes/{seed['rival']}").status_code == 404

    def test_athlete_tournaments(self, client, seed):
        login(client, seed['north_user'])

        response = client.get(f"/api/v1/athletes/{seed['lucia']}/tournaments?event_id={seed['event']}")

        assert response.status_code == 200
        assert [i['tournament']['id'] for i in response.json['items']] == [seed['juniors']]
        assert response.json['items'][0]['open_counterpart_id'] == seed['open']
        assert response.json['suggested'] == {'full:classic': seed['juniors']}


class TestTeamRegistrations:

    def test_sync_registrations(self, app, client, seed):
        login(client, seed['north_user'])

        response = client.put(f"/api/v1/tournaments/{seed['juniors']}/registrations", json={
            'nominations': [
                {'athlete_id': seed['lucia'], 'weight_class': 'F_CAT43', 'squat_opener_kg': 80},
                {'athlete_id': seed['rival'], 'weight_class': 'F_CAT63'},
            ],
        })

        assert response.status_code == 200
        assert response.json['added'] == [seed['lucia']]
        assert response.json['ignored'] == [seed['rival']]

        listing = client.get('/api/v1/registrations')
        assert [r['athlete_id'] for r in listing.json['items']] == [seed['lucia']]
        assert listing.json['items'][0]['weight_class_label'] == '-43 kg'

    def test_create_registration_validates_weight_class(self, client, seed):
        login(client, seed['north_user'])

        response = client.post('/api/v1/registrations', json={
            'tournament_id': seed['juniors'],
            'athlete_id': seed['lucia'],
            'weight_class': 'M_CAT66',
        })

        assert response.status_code == 400

    def test_create_registration_in_ineligible_division(self, client, seed):
        login(client, seed['north_user'])

        response = client.post('/api/v1/registrations', json={
            'tournament_id': seed['open'],
            'athlete_id': seed['lucia'],
            'weight_class': 'F_CAT52',
        })

        assert response.status_code == 400
        assert 'age-eligible' in response.json['message']


class TestAdmin:

    def test_event_lifecycle(self, client, seed):
        login(client, seed['admin'])

        created = client.post('/admin/events', json={
            'name': 'Copa Primavera',
            'slug': 'Copa-Primavera',
            'venue': 'Gimnasio Municipal',
            'location': 'Rosario',
            'start_date': '2025-09-20',
            'end_date': '2025-09-21',
        })
        assert created.status_code == 201
        event_id = created.json['event']['id']
        assert created.json['event']['slug'] == 'copa-primavera'

        tournament = client.post(f'/admin/events/{event_id}/tournaments', json={
            'name': 'Open Banca',
            'division': 'open',
            'modality': 'bench',
            'equipment': 'classic',
        })
        assert tournament.status_code == 201
        assert tournament.json['tournament']['status'] == 'draft'

        opened = client.post(
            f"/admin/tournaments/{tournament.json['tournament']['id']}/status",
            json={'status': 'preliminary_open'},
        )
        assert opened.json['tournament']['accepts_nominations'] is True

        assert client.delete(f'/admin/events/{event_id}').status_code == 200
        assert client.get(f'/api/v1/events/{event_id}').status_code == 404

    def test_event_dates_validated(self, client, seed):
        login(client, seed['admin'])

        response = client.post('/admin/events', json={
            'name': 'Copa Primavera',
            'slug': 'copa-primavera',
            'venue': 'Gimnasio',
            'location': 'Rosario',
            'start_date': '2025-09-21',
            'end_date': '2025-09-20',
        })

        assert response.status_code == 400

    def test_referee_crud_and_roster(self, client, seed):
        login(client, seed['admin'])

        created = client.post('/admin/referees', json={
            'full_name': 'Zoe Blanco',
            'dni': '20999888',
            'category': 'int_cat_1',
        })
        assert created.status_code == 201
        referee_id = created.json['referee']['id']

        synced = client.put(f"/admin/events/{seed['event']}/referees", json={'referee_ids': [referee_id]})
        assert synced.json == {'added': [referee_id], 'removed': [], 'updated': []}

        again = client.put(f"/admin/events/{seed['event']}/referees", json={'referee_ids': [referee_id]})
        assert again.json == {'added': [], 'removed': [], 'updated': []}

        duplicate = client.put(
            f"/admin/events/{seed['event']}/referees",
            json={'referee_ids': [referee_id, referee_id]},
        )
        assert duplicate.status_code == 400

    def test_review_registrations(self, app, client, seed):
        with app.app_context():
            registration = Registration(
                tournament_id=seed['open'],
                team_id=seed['south'],
                athlete_id=seed['rival'],
                weight_class=WeightClass.F_CAT63,
            )
            db.session.add(registration)
            db.session.commit()
            registration_id = registration.id

        login(client, seed['admin'])

        rejected = client.post(f'/admin/registrations/{registration_id}/reject', json={})
        assert rejected.status_code == 400

        rejected = client.post(f'/admin/registrations/{registration_id}/reject', json={'reason': 'Sin apto médico'})
        assert rejected.json['registration']['status'] == 'rejected'
        assert rejected.json['registration']['rejection_reason'] == 'Sin apto médico'

        bulk = client.post('/admin/registrations/bulk-status', json={
            'registration_ids': [registration_id, 'missing-id'],
            'status': 'approved',
        })
        assert bulk.status_code == 207
        assert bulk.json == {'updated': 1, 'missing': ['missing-id']}

        with app.app_context():
            assert db.session.get(Registration, registration_id).status == RegistrationStatus.APPROVED

        listing = client.get(f"/admin/registrations?event_id={seed['event']}&status=approved")
        assert [r['id'] for r in listing.json['items']] == [registration_id]

        assert client.get('/admin/registrations?status=bogus').status_code == 400


class TestRateLimitKey:
    """Rate limit budgets are keyed by account once logged in."""

    def test_anonymous_requests_keyed_by_address(self, app):
        with app.test_request_context('/auth/login', environ_base={'REMOTE_ADDR': '10.0.0.7'}):
            assert rate_limit_key() == '10.0.0.7'

    def test_logged_in_requests_keyed_by_user(self, app):
        with app.app_context():
            user_id = make_team('norte').user_id

        with app.test_request_context('/api/v1/athletes', environ_base={'REMOTE_ADDR': '10.0.0.7'}):
            login_user(db.session.get(User, user_id))
            assert rate_limit_key() == f'user:{user_id}'
