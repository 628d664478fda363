"""CLI commands for PFMS."""

from .db import db_commands
from .export import export_commands
from .user import team_commands, user_commands


def register_commands(app):
    """Register all CLI command groups with the Flask app."""
    app.cli.add_command(db_commands)
    app.cli.add_command(export_commands)
    app.cli.add_command(user_commands)
    app.cli.add_command(team_commands)
