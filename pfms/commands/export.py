"""XLSX export CLI commands."""

from pathlib import Path

import click
from flask import current_app
from flask.cli import with_appcontext

from pfms.errors import PFMSError
from pfms.services.eligibility import reference_year
from pfms.services.export_import import export_registrations_xlsx


@click.group('export')
def export_commands():
    """Spreadsheet export commands."""
    pass


def ensure_export_dir(output_dir: str | None = None) -> Path:
    """Ensure the export directory exists."""
    export_dir = Path(output_dir or current_app.config.get('EXPORT_DIR', '/tmp/exports'))
    export_dir.mkdir(parents=True, exist_ok=True)
    return export_dir


@export_commands.command('registrations')
@click.option('--event', 'event_id', required=True, help='Event ID to export registrations for')
@click.option('--output-dir', help='Custom output directory (default: EXPORT_DIR)')
@with_appcontext
def export_registrations(event_id, output_dir):
    """Export every registration of an event to an .xlsx file.

    Example:
        flask export registrations --event <id>
    """
    try:
        content, filename = export_registrations_xlsx(event_id, reference_year())
    except PFMSError as e:
        click.echo(click.style(f'Error: {e.message}', fg='red'))
        raise SystemExit(1)

    export_dir = ensure_export_dir(output_dir)
    file_path = export_dir / filename
    file_path.write_bytes(content)

    click.echo(click.style('✓ Export completed successfully!', fg='green'))
    click.echo(f'  • {file_path}')
