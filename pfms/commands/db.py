"""Database bootstrap CLI commands."""

import click
from flask.cli import with_appcontext

from pfms.extensions import db


@click.group('database')
def db_commands():
    """Database bootstrap commands."""
    pass


@db_commands.command('create')
@with_appcontext
def create_tables():
    """Create all tables that do not exist yet."""
    import pfms.models  # noqa: F401

    db.create_all()
    click.echo(click.style('Tables created.', fg='green'))
