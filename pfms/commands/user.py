"""User and team account CLI commands."""

import click
from flask.cli import with_appcontext

from pfms.extensions import db
from pfms.models import Team, User, UserRole
from pfms.services.audit import log_admin_action


def _get_user_by_email(email: str) -> User | None:
    return db.session.query(User).filter(User.email.ilike(email.strip())).first()


@click.group('user')
def user_commands():
    """User management commands."""
    pass


@user_commands.command('create')
@click.option('--email', required=True, help='User email')
@click.option('--name', required=True, help='Display name')
@click.option('--password', required=True, help='User password')
@click.option('--role', type=click.Choice([r.value for r in UserRole]), default=UserRole.ADMIN.value, show_default=True)
@with_appcontext
def create_user(email, name, password, role):
    """Create a federation admin or team user."""
    if _get_user_by_email(email):
        click.echo(click.style(f'Error: User with email "{email}" already exists', fg='red'))
        return

    user = User(email=email.strip().lower(), name=name, role=UserRole(role))
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    log_admin_action(None, 'user_created', 'user', user.id, metadata={'role': role, 'source': 'cli'})

    click.echo(click.style('User created successfully!', fg='green'))
    click.echo(f'  Email: {user.email}')
    click.echo(f'  Role: {role}')


@user_commands.command('set-password')
@click.option('--email', required=True, help='User email')
@click.option('--password', required=True, help='New password')
@with_appcontext
def set_password(email, password):
    """Set or reset a user's password."""
    user = _get_user_by_email(email)
    if not user:
        click.echo(click.style(f'Error: No user {email} found', fg='red'))
        return

    user.set_password(password)
    db.session.commit()
    click.echo(click.style('Password updated.', fg='green'))


@click.group('team')
def team_commands():
    """Team account commands."""
    pass


@team_commands.command('create')
@click.option('--slug', required=True, help='Unique team slug')
@click.option('--email', required=True, help='Email of the team account')
@click.option('--name', required=True, help='Team display name')
@click.option('--password', help='Password when the team account does not exist yet')
@with_appcontext
def create_team(slug, email, name, password):
    """Create a team, creating its team-role user when needed."""
    slug = slug.strip().lower()
    if db.session.query(Team).filter_by(slug=slug).first():
        click.echo(click.style(f'Error: Team with slug "{slug}" already exists', fg='red'))
        return

    user = _get_user_by_email(email)
    if user is None:
        if not password:
            click.echo(click.style('Error: --password is required to create the team account', fg='red'))
            return
        user = User(email=email.strip().lower(), name=name, role=UserRole.TEAM)
        user.set_password(password)
        db.session.add(user)
        db.session.flush()
    elif not user.has_role(UserRole.TEAM):
        click.echo(click.style(f'Error: {email} is not a team account', fg='red'))
        return
    elif user.team is not None:
        click.echo(click.style(f'Error: {email} already owns team "{user.team.slug}"', fg='red'))
        return

    team = Team(slug=slug, user_id=user.id)
    db.session.add(team)
    db.session.commit()
    log_admin_action(None, 'team_created', 'team', team.id, metadata={'slug': slug, 'source': 'cli'})

    click.echo(click.style('Team created successfully!', fg='green'))
    click.echo(f'  Slug: {team.slug}')
    click.echo(f'  Account: {user.email}')
