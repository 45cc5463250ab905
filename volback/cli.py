"""
Command line interface for volback.

Default (no flags): unattended backup of the volumes listed in the settings
file. Exit code 0 on success, 1 on any backup, restore or configuration
failure.
"""

import logging
import sys

import click
from flask import current_app
from flask.cli import with_appcontext

from volback import prompts
from volback.backup.executor import run_backups, run_configured_backups
from volback.backup.naming import InvalidVolumeName
from volback.backup.restore import restore_volume
from volback.backup.runtime import RuntimeOperationError, get_runtime
from volback.backup.storage import ArchiveStore, PathError
from volback.settings import BackupSettings, SettingsError, get_settings, save_settings

logger = logging.getLogger(__name__)


def _fail(message: str):
    click.echo(f"ERROR: {message}", err=True)
    sys.exit(1)


def _report(result):
    """Print a batch outcome and exit non-zero if any volume failed."""
    for volume_name in result.succeeded:
        click.echo(f"  ok      {volume_name} -> {result.archives[volume_name].path}")
    for volume_name in result.skipped:
        click.echo(f"  skipped {volume_name} (volume not found)")
    for volume_name, error in sorted(result.failed.items()):
        click.echo(f"  FAILED  {volume_name}: {error}")

    if not result.ok:
        _fail(f"One or more volume backups failed: {', '.join(sorted(result.failed))}")
    click.echo(f"Backup process completed ({result.summary()}).")


def _open_store(settings: BackupSettings) -> ArchiveStore:
    store = ArchiveStore(settings.backup_dir)
    try:
        store.ensure_base_dir()
    except PathError as e:
        _fail(str(e))
    click.echo(f"Using backup directory: {settings.backup_dir}")
    return store


def _runtime():
    try:
        return get_runtime()
    except RuntimeOperationError as e:
        _fail(str(e))


def silent_backup(settings: BackupSettings):
    """Back up every configured volume without asking anything."""
    click.echo(f"Silent Backup Mode (configured volumes: {len(settings.configured_volumes())})")

    if not settings.configured_volumes():
        click.echo("No volumes configured. Nothing to back up.")
        return

    store = _open_store(settings)
    result = run_configured_backups(settings, store, _runtime())
    _report(result)


def interactive_backup(settings: BackupSettings):
    """Pick running volumes and back them up after confirmation."""
    click.echo("Interactive Backup Mode")

    backup_dir = click.prompt("Enter backup directory", default=settings.backup_dir)
    settings = settings.replace(backup_dir=backup_dir)
    store = _open_store(settings)
    runtime = _runtime()

    try:
        running = runtime.list_running_volume_names()
    except RuntimeOperationError as e:
        _fail(str(e))

    if not running:
        click.echo("No running volumes found to back up.")
        return

    click.echo("Available running volumes:")
    selected = prompts.select_volumes(running, "Select volumes to backup")
    if selected is None:
        click.echo("Selection cancelled.")
        return

    click.echo("The following volumes will be backed up:")
    for volume_name in selected:
        click.echo(f" - {volume_name} (keeping {settings.resolve_retention(volume_name)})")

    if not prompts.confirm("Proceed with backup?"):
        click.echo("Backup cancelled by user.")
        return

    _report(run_backups(selected, settings, store, runtime))


def interactive_restore(settings: BackupSettings):
    """Pick a volume and one of its archives, then run the restore session."""
    click.echo(f"Interactive Restore Mode (using backup dir: {settings.backup_dir})")
    store = _open_store(settings)

    try:
        directories = store.list_volume_directories()
    except PathError as e:
        _fail(str(e))

    if not directories:
        _fail(f"No volume backup subdirectories found in '{settings.backup_dir}'.")

    labels = [
        d.volume_name if d.volume_name == d.sanitized_name else f"{d.volume_name} (directory: {d.sanitized_name})"
        for d in directories
    ]
    click.echo("Select the volume you want to restore:")
    directory = prompts.choose_one(directories, "Volume", labels=labels)
    if directory is None:
        click.echo("Exiting.")
        return

    volume_name = directory.volume_name
    try:
        archives = store.list_archives(volume_name)
    except (InvalidVolumeName, PathError) as e:
        _fail(str(e))
    if not archives:
        _fail(f"No backups found for volume '{volume_name}'.")

    click.echo("Select the backup file to restore:")
    archive = prompts.choose_one(archives, "Backup", labels=[a.filename for a in archives])
    if archive is None:
        click.echo("Restore cancelled.")
        return

    session = restore_volume(volume_name, archive.path, _runtime(), prompts.confirm)

    if session.cancelled:
        click.echo("Restore cancelled by user.")
        return
    if session.failed:
        if session.stopped and not session.restarted:
            click.echo(f"Containers left stopped: {', '.join(session.stopped)}")
        _fail(str(session.error))

    if session.restarted:
        click.echo(f"Restarted containers: {', '.join(session.restarted)}")
    click.echo(f"Restore process completed for volume '{volume_name}'.")


def list_archives(settings: BackupSettings):
    """Print every volume directory and its archives, newest first."""
    store = ArchiveStore(settings.backup_dir)
    try:
        directories = store.list_volume_directories()
    except PathError as e:
        _fail(str(e))

    if not directories:
        click.echo(f"No backups found in '{settings.backup_dir}'.")
        return

    for directory in directories:
        try:
            archives = store.list_archives(directory.volume_name)
        except (InvalidVolumeName, PathError) as e:
            logger.warning(f"Skipping '{directory.path}': {e}")
            continue
        keep = settings.resolve_retention(directory.volume_name)
        click.echo(f"{directory.volume_name} ({len(archives)} archives, keeping {keep}):")
        for archive in archives:
            click.echo(f"  {archive.filename}")


def configure(settings: BackupSettings, config_file: str):
    """Interactively build and save the settings file."""
    click.echo("Configuration")

    backup_dir = click.prompt("Enter backup directory", default=settings.backup_dir)
    default_max = prompts.prompt_retention(
        "Enter default number of backups to keep per volume",
        settings.default_retention()
    )

    try:
        all_volumes = _runtime().list_volume_names()
    except RuntimeOperationError as e:
        _fail(str(e))

    selected = []
    if not all_volumes:
        click.echo("No Docker volumes found on the system.")
    else:
        labels = []
        for volume_name in all_volumes:
            current = settings.volume_policy(volume_name)
            if volume_name in settings.volumes:
                labels.append(f"{volume_name} (current: {current or default_max})")
            else:
                labels.append(f"{volume_name} (default: {default_max})")

        click.echo("Select volumes to include in the configuration:")
        selected = prompts.select_volumes(all_volumes, "Select volumes", labels=labels, allow_none=True)
        if selected is None:
            click.echo("Configuration cancelled.")
            return

    volumes = {}
    if selected:
        click.echo(f"Configure max backups for selected volumes (default: {default_max}):")
        for volume_name in selected:
            current = settings.volume_policy(volume_name) or default_max
            volumes[volume_name] = prompts.prompt_retention(f" - Max backups for '{volume_name}'", current)

    new_settings = settings.replace(backup_dir=backup_dir, default_max_backups=default_max, volumes=volumes)

    click.echo("Proposed Configuration")
    click.echo(f"Backup Directory: {new_settings.backup_dir}")
    click.echo(f"Default Max Backups: {new_settings.default_max_backups}")
    click.echo("Volumes to Manage:")
    if volumes:
        for volume_name, max_backups in volumes.items():
            click.echo(f" - Name: {volume_name}, Max Backups: {max_backups}")
    else:
        click.echo(" (None)")

    if not prompts.confirm(f"Save this configuration to '{config_file}'?"):
        click.echo("Configuration not saved.")
        return

    try:
        save_settings(config_file, new_settings)
    except SettingsError as e:
        _fail(str(e))
    click.echo(f"Configuration successfully saved to '{config_file}'.")


def run_daemon(settings: BackupSettings, config_file: str):
    """Run unattended backups on the configured cron schedule."""
    from volback.scheduler import init_scheduler, start_scheduler

    schedule = settings.schedule or current_app.config['DEFAULT_SCHEDULE']
    try:
        init_scheduler(current_app._get_current_object(), schedule, config_file)
    except ValueError as e:
        _fail(f"Invalid schedule '{schedule}': {e}")

    click.echo(f"Running unattended backups on schedule '{schedule}'. Press Ctrl+C to stop.")
    start_scheduler()


@click.command('volumes', context_settings={'help_option_names': ['-h', '--help']})
@click.option('-i', '--interactive', is_flag=True, help='Run interactive backup mode (select running volumes).')
@click.option('-r', '--restore', 'restore_mode', is_flag=True, help='Enter interactive restore mode.')
@click.option('-c', '--configure', 'configure_mode', is_flag=True, help='Interactively configure backup settings.')
@click.option('-l', '--list', 'list_mode', is_flag=True, help='List the archives of every backed up volume.')
@click.option('-d', '--daemon', is_flag=True, help='Run unattended backups on the configured schedule.')
@click.option('--config', 'config_file', type=click.Path(dir_okay=False), default=None,
              help='Settings file (default: backup_config.json).')
@with_appcontext
def volumes_command(interactive, restore_mode, configure_mode, list_mode, daemon, config_file):
    """Back up, rotate and restore Docker volumes.

    Without flags, backs up the volumes listed in the settings file.
    """
    config_file = config_file or current_app.config['CONFIG_FILE']

    try:
        settings = get_settings(config_file)
    except SettingsError as e:
        _fail(str(e))

    if configure_mode:
        configure(settings, config_file)
    elif restore_mode:
        interactive_restore(settings)
    elif list_mode:
        list_archives(settings)
    elif daemon:
        run_daemon(settings, config_file)
    elif interactive:
        interactive_backup(settings)
    else:
        silent_backup(settings)


def register_commands(app):
    """Expose the volumes command as `flask --app volback volumes`."""
    app.cli.add_command(volumes_command)


def main(argv=None):
    """Console script entry point (`volback`)."""
    from volback import create_app

    app = create_app()
    with app.app_context():
        volumes_command.main(args=argv, prog_name='volback')
