"""Row builders for tests; call them inside an application context."""

from datetime import date

from pfms.extensions import db
from pfms.models import (
    Athlete,
    Coach,
    Equipment,
    Event,
    Gender,
    Modality,
    Referee,
    RefereeCategory,
    Team,
    Tournament,
    TournamentDivision,
    TournamentStatus,
    User,
    UserRole,
)

PASSWORD = 'TestPass123!'


def make_user(email='admin@example.com', role=UserRole.ADMIN, name='Federation Admin', active=True):
    user = User(email=email, name=name, role=role, active=active)
    user.set_password(PASSWORD)
    db.session.add(user)
    db.session.commit()
    return user


def make_team(slug='halterofilia-norte', name=None):
    user = make_user(
        email=f'{slug}@example.com',
        role=UserRole.TEAM,
        name=name or slug.replace('-', ' ').title(),
    )
    team = Team(slug=slug, user_id=user.id)
    db.session.add(team)
    db.session.commit()
    return team


def make_athlete(team, full_name='Lucía Gómez', dni='40111222', birth_year=2000, gender=Gender.F, **kwargs):
    athlete = Athlete(
        team_id=team.id,
        full_name=full_name,
        dni=dni,
        birth_year=birth_year,
        gender=gender,
        **kwargs,
    )
    db.session.add(athlete)
    db.session.commit()
    return athlete


def make_coach(team, full_name='Marcos Díaz', dni='30111222'):
    coach = Coach(team_id=team.id, full_name=full_name, dni=dni)
    db.session.add(coach)
    db.session.commit()
    return coach


def make_referee(full_name='Ana Torres', dni='20111222', category=RefereeCategory.NATIONAL):
    referee = Referee(full_name=full_name, dni=dni, category=category)
    db.session.add(referee)
    db.session.commit()
    return referee


def make_event(name='Campeonato Nacional 2025', slug='nacional-2025'):
    event = Event(
        name=name,
        slug=slug,
        venue='Club Atlético Central',
        location='Córdoba',
        start_date=date(2025, 6, 14),
        end_date=date(2025, 6, 15),
    )
    db.session.add(event)
    db.session.commit()
    return event


def make_tournament(
    event,
    name='Open Clásico',
    division=TournamentDivision.OPEN,
    modality=Modality.FULL,
    equipment=Equipment.CLASSIC,
    status=TournamentStatus.PRELIMINARY_OPEN,
    max_athletes=None,
):
    tournament = Tournament(
        event_id=event.id,
        name=name,
        division=division,
        modality=modality,
        equipment=equipment,
        status=status,
        max_athletes=max_athletes,
    )
    db.session.add(tournament)
    db.session.commit()
    return tournament


def login(client, user_id):
    """Authenticate the test client as ``user_id`` through the session cookie."""
    with client.session_transaction() as sess:
        sess['_user_id'] = user_id
        sess['_fresh'] = True
