import pytest

from factories import make_athlete, make_event, make_team, make_tournament, make_user
from pfms.errors import ConflictError, NotFoundError, ValidationError
from pfms.extensions import db
from pfms.models import (
    Gender,
    Registration,
    RegistrationStatus,
    TournamentDivision,
    TournamentStatus,
    WeightClass,
)
from pfms.services import registrations
from pfms.services.crud import AthleteService, EventService

YEAR = 2025


@pytest.fixture
def setup(ctx):
    """Two teams, an open tournament and a few athletes."""
    admin = make_user()
    north = make_team('norte')
    south = make_team('sur')
    event = make_event()
    tournament = make_tournament(event)
    lucia = make_athlete(north, 'Lucía Gómez', '40111222', 1998, Gender.F)
    pedro = make_athlete(north, 'Pedro Sosa', '40111333', 1995, Gender.M)
    rival = make_athlete(south, 'Elena Ríos', '40111444', 1997, Gender.F)
    return {
        'admin': admin,
        'north': north,
        'south': south,
        'event': event,
        'tournament': tournament,
        'lucia': lucia,
        'pedro': pedro,
        'rival': rival,
    }


def nominate(team, tournament, athlete, weight_class, **extra):
    data = {'tournament_id': tournament.id, 'athlete_id': athlete.id, 'weight_class': weight_class, **extra}
    return registrations.create_registration(team, data, YEAR)


def alive_registrations(tournament_id):
    return Registration.query.filter_by(tournament_id=tournament_id, deleted_at=None).all()


class TestCreateRegistration:
    """Single nominations."""

    def test_creates_pending_registration(self, setup):
        reg = nominate(setup['north'], setup['tournament'], setup['lucia'], 'F_CAT63', squat_opener_kg='110')

        assert reg.status == RegistrationStatus.PENDING
        assert reg.weight_class == WeightClass.F_CAT63
        assert reg.squat_opener_kg == 110.0
        assert reg.team_id == setup['north'].id

    def test_rejects_tournament_not_accepting_nominations(self, setup):
        draft = make_tournament(setup['event'], 'Open Equipado', status=TournamentStatus.DRAFT)

        with pytest.raises(ConflictError, match='not accepting'):
            nominate(setup['north'], draft, setup['lucia'], 'F_CAT63')

    def test_other_teams_athlete_is_not_found(self, setup):
        with pytest.raises(NotFoundError):
            nominate(setup['north'], setup['tournament'], setup['rival'], 'F_CAT63')

    def test_rejects_weight_class_for_other_gender(self, setup):
        with pytest.raises(ValidationError):
            nominate(setup['north'], setup['tournament'], setup['lucia'], 'M_CAT74')

    def test_rejects_age_ineligible_athlete(self, setup):
        juniors = make_tournament(setup['event'], 'Juniors Clásico', division=TournamentDivision.JUNIORS)

        with pytest.raises(ValidationError, match='not age-eligible'):
            nominate(setup['north'], juniors, setup['pedro'], 'M_CAT74')

    def test_duplicate_registration_conflicts(self, setup):
        nominate(setup['north'], setup['tournament'], setup['lucia'], 'F_CAT63')

        with pytest.raises(ConflictError, match='already registered'):
            nominate(setup['north'], setup['tournament'], setup['lucia'], 'F_CAT69')

    def test_negative_opener_rejected(self, setup):
        with pytest.raises(ValidationError, match='negative'):
            nominate(setup['north'], setup['tournament'], setup['lucia'], 'F_CAT63', bench_opener_kg=-5)

    def test_capacity_is_enforced(self, setup):
        small = make_tournament(setup['event'], 'Open Banca', max_athletes=1)
        nominate(setup['south'], small, setup['rival'], 'F_CAT63')

        with pytest.raises(ConflictError, match='limited to 1'):
            nominate(setup['north'], small, setup['lucia'], 'F_CAT63')


class TestSyncTournamentRegistrations:
    """Team replaces its nominations for a tournament."""

    def test_adds_and_ignores_foreign_athletes(self, setup):
        nominations = registrations.parse_nominations([
            {'athlete_id': setup['lucia'].id, 'weight_class': 'F_CAT63'},
            {'athlete_id': setup['rival'].id, 'weight_class': 'F_CAT63'},
        ])

        result, ignored = registrations.sync_tournament_registrations(
            setup['north'], setup['tournament'].id, nominations, YEAR
        )

        assert result.added == [setup['lucia'].id]
        assert ignored == [setup['rival'].id]

    def test_does_not_touch_other_teams(self, setup):
        tournament = setup['tournament']
        nominate(setup['south'], tournament, setup['rival'], 'F_CAT63')
        nominate(setup['north'], tournament, setup['lucia'], 'F_CAT63')

        result, _ = registrations.sync_tournament_registrations(setup['north'], tournament.id, [], YEAR)

        assert result.removed == [setup['lucia'].id]
        assert [r.athlete_id for r in alive_registrations(tournament.id)] == [setup['rival'].id]

    def test_edit_updates_in_place(self, setup):
        tournament = setup['tournament']
        original = nominate(setup['north'], tournament, setup['lucia'], 'F_CAT63')

        nominations = registrations.parse_nominations([
            {'athlete_id': setup['lucia'].id, 'weight_class': 'F_CAT69', 'deadlift_opener_kg': 150},
        ])
        result, _ = registrations.sync_tournament_registrations(setup['north'], tournament.id, nominations, YEAR)

        assert result.updated == [setup['lucia'].id]
        rows = alive_registrations(tournament.id)
        assert len(rows) == 1
        assert rows[0].id == original.id
        assert rows[0].weight_class == WeightClass.F_CAT69
        assert rows[0].deadlift_opener_kg == 150.0

    def test_approved_registrations_are_locked(self, setup):
        tournament = setup['tournament']
        reg = nominate(setup['north'], tournament, setup['lucia'], 'F_CAT63')
        registrations.approve_registration(reg.id, setup['admin'])

        with pytest.raises(ConflictError, match='Approved'):
            registrations.sync_tournament_registrations(setup['north'], tournament.id, [], YEAR)

        assert len(alive_registrations(tournament.id)) == 1

    def test_editing_rejected_nomination_resubmits_it(self, setup):
        tournament = setup['tournament']
        reg = nominate(setup['north'], tournament, setup['lucia'], 'F_CAT63')
        registrations.reject_registration(reg.id, setup['admin'], 'Falta certificado médico')

        nominations = registrations.parse_nominations([
            {'athlete_id': setup['lucia'].id, 'weight_class': 'F_CAT57'},
        ])
        registrations.sync_tournament_registrations(setup['north'], tournament.id, nominations, YEAR)

        row = db.session.get(Registration, reg.id)
        assert row.status == RegistrationStatus.PENDING
        assert row.rejection_reason is None
        assert row.reviewed_by_user_id is None

    def test_kept_rejected_nomination_does_not_count_against_capacity(self, setup):
        small = make_tournament(setup['event'], 'Open Banca', max_athletes=2)
        nominate(setup['south'], small, setup['rival'], 'F_CAT63')
        reg = nominate(setup['north'], small, setup['lucia'], 'F_CAT63')
        registrations.reject_registration(reg.id, setup['admin'], 'Falta certificado médico')

        nominations = registrations.parse_nominations([
            {'athlete_id': setup['lucia'].id, 'weight_class': 'F_CAT63'},
            {'athlete_id': setup['pedro'].id, 'weight_class': 'M_CAT83'},
        ])
        result, _ = registrations.sync_tournament_registrations(setup['north'], small.id, nominations, YEAR)

        assert result.added == [setup['pedro'].id]
        assert db.session.get(Registration, reg.id).status == RegistrationStatus.REJECTED

    def test_edited_rejected_nomination_counts_against_capacity(self, setup):
        small = make_tournament(setup['event'], 'Open Banca', max_athletes=2)
        nominate(setup['south'], small, setup['rival'], 'F_CAT63')
        reg = nominate(setup['north'], small, setup['lucia'], 'F_CAT63')
        registrations.reject_registration(reg.id, setup['admin'], 'Falta certificado médico')

        nominations = registrations.parse_nominations([
            {'athlete_id': setup['lucia'].id, 'weight_class': 'F_CAT57'},
            {'athlete_id': setup['pedro'].id, 'weight_class': 'M_CAT83'},
        ])
        with pytest.raises(ConflictError, match='limited to 2'):
            registrations.sync_tournament_registrations(setup['north'], small.id, nominations, YEAR)

        assert db.session.get(Registration, reg.id).status == RegistrationStatus.REJECTED

    def test_invalid_weight_class_aborts_whole_sync(self, setup):
        nominations = registrations.parse_nominations([
            {'athlete_id': setup['lucia'].id, 'weight_class': 'F_CAT63'},
            {'athlete_id': setup['pedro'].id, 'weight_class': 'F_CAT63'},
        ])

        with pytest.raises(ValidationError):
            registrations.sync_tournament_registrations(setup['north'], setup['tournament'].id, nominations, YEAR)

        assert alive_registrations(setup['tournament'].id) == []

    @pytest.mark.parametrize('payload', [None, 'x', [{'weight_class': 'F_CAT63'}], [{'athlete_id': 'a'}]])
    def test_parse_nominations_rejects_bad_shapes(self, payload):
        with pytest.raises(ValidationError):
            registrations.parse_nominations(payload)


class TestReview:
    """Admin approval workflow."""

    def test_reject_requires_reason(self, setup):
        reg = nominate(setup['north'], setup['tournament'], setup['lucia'], 'F_CAT63')

        with pytest.raises(ValidationError, match='reason'):
            registrations.reject_registration(reg.id, setup['admin'], '  ')

    def test_approve_records_reviewer(self, setup):
        reg = nominate(setup['north'], setup['tournament'], setup['lucia'], 'F_CAT63')

        approved = registrations.approve_registration(reg.id, setup['admin'])

        assert approved.status == RegistrationStatus.APPROVED
        assert approved.reviewed_by_user_id == setup['admin'].id
        assert approved.reviewed_at is not None

    def test_bulk_update_reports_missing(self, setup):
        a = nominate(setup['north'], setup['tournament'], setup['lucia'], 'F_CAT63')
        b = nominate(setup['north'], setup['tournament'], setup['pedro'], 'M_CAT83')

        updated, missing = registrations.bulk_update_status(
            [a.id, b.id, 'missing-id', a.id], 'approved', setup['admin']
        )

        assert updated == 2
        assert missing == ['missing-id']
        statuses = {r.status for r in alive_registrations(setup['tournament'].id)}
        assert statuses == {RegistrationStatus.APPROVED}

    def test_list_registrations_filters(self, setup):
        nominate(setup['north'], setup['tournament'], setup['lucia'], 'F_CAT63')
        nominate(setup['south'], setup['tournament'], setup['rival'], 'F_CAT63')

        assert len(registrations.list_registrations(event_id=setup['event'].id)) == 2
        assert len(registrations.list_registrations(team_id=setup['south'].id)) == 1
        assert registrations.list_registrations(status=RegistrationStatus.APPROVED) == []


class TestTournamentStatus:

    def test_allowed_transition(self, setup):
        draft = make_tournament(setup['event'], 'Open Equipado', status=TournamentStatus.DRAFT)

        tournament = registrations.set_tournament_status(draft.id, 'preliminary_open', setup['admin'])

        assert tournament.status == TournamentStatus.PRELIMINARY_OPEN
        assert tournament.accepts_nominations

    def test_disallowed_transition(self, setup):
        draft = make_tournament(setup['event'], 'Open Equipado', status=TournamentStatus.DRAFT)

        with pytest.raises(ConflictError):
            registrations.set_tournament_status(draft.id, 'finished', setup['admin'])

    def test_unknown_status(self, setup):
        with pytest.raises(ValidationError):
            registrations.set_tournament_status(setup['tournament'].id, 'archived', setup['admin'])


class TestSoftDeleteCascade:
    """Deleting owners soft-deletes dependent rows."""

    def test_deleting_athlete_removes_registrations(self, setup):
        reg = nominate(setup['north'], setup['tournament'], setup['lucia'], 'F_CAT63')

        AthleteService(setup['north']).delete(setup['lucia'].id)

        assert db.session.get(Registration, reg.id).deleted_at is not None

    def test_deleted_dni_can_be_reused(self, setup):
        service = AthleteService(setup['north'])
        service.delete(setup['lucia'].id)

        athlete = service.create({
            'full_name': 'Lucía Gómez',
            'dni': '40111222',
            'birth_year': 1998,
            'gender': Gender.F,
        })

        assert athlete.id != setup['lucia'].id

    def test_alive_dni_conflicts(self, setup):
        with pytest.raises(ConflictError, match='DNI 40111222'):
            AthleteService(setup['north']).create({
                'full_name': 'Otra Persona',
                'dni': '40111222',
                'birth_year': 1990,
                'gender': Gender.F,
            })

    def test_deleting_event_cascades(self, setup):
        reg = nominate(setup['north'], setup['tournament'], setup['lucia'], 'F_CAT63')

        EventService().delete(setup['event'].id)

        assert setup['tournament'].deleted_at is not None
        assert db.session.get(Registration, reg.id).deleted_at is not None
        with pytest.raises(ConflictError):
            EventService().create({
                'name': 'Campeonato Nacional 2025',
                'slug': 'nacional-2025',
                'venue': 'Club',
                'location': 'Córdoba',
                'start_date': setup['event'].start_date,
                'end_date': setup['event'].end_date,
            })
