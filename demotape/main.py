"""
Main CLI interface for Demotape

This module provides the command-line interface for syncing Dropbox playlists
and their tracks into the local document root. It is the primary entry point
for user interactions with the application.

The CLI is built using Click framework and provides structured command groups for:
- Playlist operations (playlists, sync, show, download, browse, clean)
- Authentication handling (login, logout, status)
- Configuration management (show, set)
"""

import sys
import click
import functools

from .config.settings import get_settings, reload_settings
from .config.auth import AuthState
from .storage.dropbox import DropboxClient
from .storage.exceptions import AuthRejected, DemotapeError
from .storage.models import DOWNLOAD_COMPLETE, PlaylistView
from .sync.synchronizer import create_synchronizer
from .utils.logger import configure_from_settings, create_operation_logger, get_logger, get_current_log_file
from .utils.helpers import format_file_size, format_timestamp

logger = get_logger(__name__)


def print_banner():
    """Print application banner to console"""
    banner = """
╔═══════════════════════════════════════════════════════════════╗
║                           Demotape                            ║
║                                                               ║
║      Dropbox playlists, synced for offline listening          ║
║                                                               ║
╚═══════════════════════════════════════════════════════════════╝
    """
    click.echo(click.style(banner, fg='green', bold=True))


def handle_error(func):
    """
    Decorator to handle common CLI errors gracefully

    Application errors show their user-facing message; anything else is
    logged and reported as a generic failure. Both exit with status 1.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            click.echo(click.style("\n\nOperation cancelled by user", fg='yellow'))
            sys.exit(130)
        except AuthRejected as e:
            click.echo(click.style(f"Error: {e.message}", fg='red'), err=True)
            click.echo("   Run 'demotape auth login' to authenticate", err=True)
            sys.exit(1)
        except DemotapeError as e:
            click.echo(click.style(f"Error: {e.message}", fg='red'), err=True)
            sys.exit(1)
        except Exception as e:
            logger.error(f"Command failed: {e}", exc_info=True)
            click.echo(click.style(f"Error: {e}", fg='red'), err=True)
            sys.exit(1)
    return wrapper


def _status_label(view):
    if view.can_play:
        return "downloaded"
    if view.is_downloading:
        return f"{view.download_status}%"
    return "not downloaded"


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--config', type=click.Path(), help='Path to config file')
@click.pass_context
def cli(ctx, version, verbose, config):
    """
    Demotape - Sync Dropbox playlists for offline listening

    Playlists are .mix files in Dropbox. Demotape caches them locally,
    downloads their tracks on request and removes files no playlist needs.
    """
    ctx.ensure_object(dict)

    if version:
        from . import __version__
        click.echo(f"Demotape v{__version__}")
        return

    if config:
        reload_settings(config)
        click.echo(f"Loaded config: {config}")

    if verbose:
        get_settings().logging.level = 'DEBUG'
        ctx.obj['verbose'] = True

    configure_from_settings()

    if ctx.invoked_subcommand is None:
        print_banner()
        click.echo(ctx.get_help())


@cli.command()
@handle_error
def playlists():
    """List playlists cached in the document root"""
    synchronizer = create_synchronizer()
    cached = synchronizer.store.all()

    if not cached:
        click.echo("No playlists cached yet")
        click.echo("   Run 'demotape sync FOLDER' to discover playlists")
        return

    click.echo(f"Found {len(cached)} playlists:\n")
    for playlist in cached:
        view = PlaylistView.from_playlist(playlist)
        tracks = playlist.tracks
        downloaded = sum(1 for t in tracks if t.is_downloaded)
        click.echo(f" {view.title}")
        click.echo(f"   {view.path}")
        click.echo(f"   {downloaded}/{len(tracks)} tracks downloaded")
        click.echo(f"   {view.updated_relative}")
        click.echo()


@cli.command()
@click.argument('folder', default='')
@handle_error
def sync(folder):
    """
    Discover playlists in a Dropbox folder

    FOLDER defaults to the configured root folder.
    """
    synchronizer = create_synchronizer()
    folder = folder or synchronizer.settings.sync.root_folder
    click.echo(f"Loading playlists from: {folder or '/'}")

    found = synchronizer.load_playlists(folder, force=True)

    click.echo(f"\nSync Results: {len(found)} playlists")
    for view in synchronizer.store.playlist_views():
        click.echo(f"   {view.title} ({view.updated_relative})")


@cli.command()
@click.argument('path')
@handle_error
def show(path):
    """Show the tracks of a playlist and their download status"""
    synchronizer = create_synchronizer()
    playlist = synchronizer.select_playlist(path)

    click.echo(f"\nPlaylist: {playlist.title}")
    click.echo(f"   Path: {playlist.meta.path_display}")
    if playlist.meta.server_modified:
        click.echo(f"   Modified: {format_timestamp(playlist.meta.server_modified)}")
    click.echo(f"   Tracks: {len(playlist.tracks)}\n")
    for view in synchronizer.store.track_views():
        click.echo(f"   {view.display_name} [{_status_label(view)}]")


@cli.command()
@click.argument('path')
@handle_error
def download(path):
    """
    Download every missing track of a playlist

    Interrupted downloads resume from their partial files on the next run.
    """
    synchronizer = create_synchronizer()
    playlist = synchronizer.select_playlist(path)

    missing = [t for t in playlist.tracks if not t.is_downloaded]
    if not missing:
        click.echo(click.style(f"All {len(playlist.tracks)} tracks already downloaded", fg='green'))
        return

    operation = create_operation_logger(__name__, f"Downloading {playlist.title}")
    operation.start(f"Downloading {len(missing)} tracks of {playlist.title}")

    total = len(missing) * DOWNLOAD_COMPLETE
    missing_ids = {t.id for t in missing}

    def on_event(event, event_path):
        if event != 'download_progress' or event_path != playlist.path:
            return
        current = synchronizer.store.get(playlist.path)
        if current is None:
            return
        done = sum(t.download_status or 0 for t in current.tracks if t.id in missing_ids)
        operation.progress("downloading", current=done, total=total)

    unsubscribe = synchronizer.store.subscribe(on_event)
    try:
        sessions = synchronizer.download_playlist(playlist.path)
        for session in sessions:
            session.wait()
    finally:
        unsubscribe()
        synchronizer.downloader.shutdown(wait_for_transfers=True)

    failed = [s for s in sessions if s.error is not None]
    if failed:
        operation.error(f"{len(failed)} of {len(sessions)} downloads did not complete")
        for session in failed:
            click.echo(click.style(f"   {session.track.name}: {session.error.message}", fg='red'), err=True)
        sys.exit(1)

    operation.complete(f"Downloaded {len(sessions)} tracks to {synchronizer.filesystem.document_root}")


@cli.command()
@click.argument('path', default='')
@click.option('--users', is_flag=True, help='Show who last modified shared entries')
@handle_error
def browse(path, users):
    """List folders and audio files of a Dropbox folder"""
    synchronizer = create_synchronizer()
    entries = synchronizer.browse(path)

    click.echo(f"{path or '/'}: {len(entries)} entries\n")
    for entry in entries:
        if entry.is_folder:
            click.echo(click.style(f"   {entry.name}/", fg='blue'))
        else:
            size = f" ({format_file_size(entry.size)})" if entry.size else ""
            click.echo(f"   {entry.name}{size}")

    if users:
        accounts = synchronizer.get_modified_users(path)
        click.echo("\nModified by:")
        for account in accounts:
            click.echo(f"   {account.full_name} ({account.abbreviated_name})")


@cli.command()
@click.option('--dry-run', is_flag=True, help='Show what would be deleted without deleting')
@handle_error
def clean(dry_run):
    """Delete local files that no playlist references"""
    synchronizer = create_synchronizer()

    if dry_run:
        orphans = synchronizer.reconciler.find_orphans(synchronizer.store.all())
        click.echo(f"{len(orphans)} files would be deleted:")
        for name in orphans:
            click.echo(f"   • {name}")
        return

    purged = synchronizer.clean()
    click.echo(f"Deleted {len(purged)} files")
    for name in purged:
        click.echo(f"   • {name}")


@cli.group()
def auth():
    """Dropbox authentication management"""
    pass


def _load_auth():
    return AuthState.load(get_settings().get_token_storage_path())


@auth.command()
@click.option('--token', help='Dropbox access token (prompted when omitted)')
@handle_error
def login(token):
    """
    Store a Dropbox access token

    The token is verified against the account endpoint before it is saved.
    """
    settings = get_settings()
    auth_state = _load_auth()

    if auth_state.is_authenticated and not token:
        account = DropboxClient(auth_state, settings.dropbox).get_current_account()
        click.echo(f"Already authenticated as: {account.get('name', {}).get('display_name', 'Unknown')}")
        return

    token = token or click.prompt("Dropbox access token", hide_input=True)
    candidate = AuthState(access_token=token)
    account = DropboxClient(candidate, settings.dropbox).get_current_account()

    auth_state.set_token(token, account.get('account_id'))
    click.echo(f"Successfully authenticated as: {account.get('name', {}).get('display_name', 'Unknown')}")


@auth.command()
@handle_error
def logout():
    """Revoke and remove the stored access token"""
    click.echo("Removing stored authentication...")
    auth_state = _load_auth()

    if auth_state.is_authenticated:
        try:
            DropboxClient(auth_state, get_settings().dropbox).revoke_token()
        except DemotapeError as e:
            logger.warning(f"Token revoke failed: {e.message}")
    auth_state.clear()

    click.echo("Successfully logged out")


@auth.command()
@handle_error
def status():
    """Check authentication status"""
    auth_state = _load_auth()

    if not auth_state.is_authenticated:
        click.echo("Authentication Status: Not authenticated")
        click.echo("   Run 'demotape auth login' to authenticate")
        return

    account = DropboxClient(auth_state, get_settings().dropbox).get_current_account()
    click.echo("Authentication Status: Authenticated")
    click.echo(f"   User: {account.get('name', {}).get('display_name', 'Unknown')}")
    click.echo(f"   Email: {account.get('email', 'Unknown')}")


@cli.group()
def config():
    """Configuration management"""
    pass


@config.command(name='show')
@handle_error
def show_config():
    """Show current configuration"""
    settings = get_settings()

    click.echo("Storage:")
    click.echo(f"   Document root: {settings.get_document_root()}")
    click.echo("\nDropbox:")
    click.echo(f"   Root folder: {settings.sync.root_folder or '/'}")
    click.echo(f"   Listing cache: {settings.sync.cache_timeout_minutes} minutes")
    click.echo(f"   Chunk size: {format_file_size(settings.dropbox.chunk_size)}")
    click.echo("\nDownloads:")
    click.echo(f"   Concurrent downloads: {settings.download.concurrency}")
    click.echo(f"   Purge after delete: {settings.sync.purge_after_delete}")

    current_log = get_current_log_file()
    click.echo(f"\nLogging: {current_log or 'Console only'}")

    issues = settings.validate()
    if issues:
        click.echo(f"\nFound {len(issues)} issues:")
        for issue in issues:
            click.echo(f"   • {issue}")


@config.command(name='set')
@click.option('--root-folder', help='Set the Dropbox folder scanned by sync')
@click.option('--document-root', type=click.Path(), help='Set the local document root')
@click.option('--concurrency', type=click.IntRange(min=1), help='Set the number of concurrent downloads')
@click.option('--purge/--no-purge', default=None, help='Purge unreferenced files after deleting a playlist')
@handle_error
def set_config(root_folder, document_root, concurrency, purge):
    """
    Update configuration settings

    Changes are written to config.yaml in the configuration directory and
    apply to every later run.
    """
    settings = get_settings()
    changes = []

    if root_folder is not None:
        settings.sync.root_folder = root_folder
        changes.append(f"Root folder: {root_folder or '/'}")

    if document_root:
        settings.storage.document_root = document_root
        changes.append(f"Document root: {document_root}")

    if concurrency:
        settings.download.concurrency = concurrency
        changes.append(f"Concurrent downloads: {concurrency}")

    if purge is not None:
        settings.sync.purge_after_delete = purge
        changes.append(f"Purge after delete: {purge}")

    if changes:
        settings.save_config()
        click.echo("Configuration updated:")
        for change in changes:
            click.echo(f"   • {change}")
    else:
        click.echo("No changes specified")


if __name__ == '__main__':
    cli()
