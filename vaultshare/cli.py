"""Flask CLI commands: ``flask --app vaultshare init-db | sweep | seed-file-types``."""

import click
from flask import current_app

from .core.context import current_context
from .core.vault import VaultLifecycleManager
from .database.db_operations import get_database_stats, seed_default_file_types
from .database.models import db


@click.command('init-db')
@click.option('--seed/--no-seed', default=True, help='Also seed the default file type allow-list.')
def init_db_command(seed):
    """Create all tables."""
    db.create_all()
    if seed:
        click.echo(f"Seeded {seed_default_file_types()} file types")
    for table, count in get_database_stats().items():
        click.echo(f"  {table}: {count}")
    click.echo('Database initialized')


@click.command('sweep')
def sweep_command():
    """Delete expired files and prune the upload log. Safe to run repeatedly."""
    report = VaultLifecycleManager(current_context()).sweep()
    click.echo(f"Deleted {report.files_deleted} expired files, "
               f"{report.upload_logs_deleted} upload log entries")
    if report.failed:
        current_app.logger.warning(f"Sweep left {len(report.failed)} files for the next run")
        click.echo(f"Failed: {', '.join(report.failed)}", err=True)


@click.command('seed-file-types')
def seed_file_types_command():
    """Insert the default file type allow-list."""
    click.echo(f"Seeded {seed_default_file_types()} file types")


def register_commands(app):
    app.cli.add_command(init_db_command)
    app.cli.add_command(sweep_command)
    app.cli.add_command(seed_file_types_command)
