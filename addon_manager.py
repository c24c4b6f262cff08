#!/usr/bin/env python3
"""
WoW Addon Manager
Command-line entry point for installing and updating addons from GitHub/GitLab
"""

import logging
from functools import wraps

import click
from rich import box
from rich.console import Console
from rich.table import Table

from addon_catalog import CATEGORIES, HANDY_ADDONS
from errors import AddonManagerError
from package_manager import PackageManager, resolve_data_dir
from package_tracker import PackageTracker
from release_resolver import DownloadPriority
from repo_reference import parse_repository_url

__version__ = '1.0.0'

console = Console()

PRIORITY_CHOICES = {
    'releases': DownloadPriority.PREFER_RELEASES,
    'code': DownloadPriority.PREFER_CODE,
}


def get_manager(ctx):
    """PackageManager for this invocation, created on first use."""
    obj = ctx.ensure_object(dict)
    if 'manager' not in obj:
        tracker = PackageTracker(obj['data_dir'])
        obj['manager'] = PackageManager(tracker)
    return obj['manager']


def handle_errors(func):
    """Report AddonManagerError as a CLI error with a non-zero exit code."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except AddonManagerError as e:
            raise click.ClickException(str(e))
    return wrapper


def _version_text(version):
    return version or '-'


def render_packages(packages):
    if not packages:
        console.print("[yellow]No managed addons.[/yellow]")
        return

    table = Table(box=box.SIMPLE, show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Installed")
    table.add_column("Latest")
    table.add_column("Folders")
    table.add_column("Updates")

    for package in packages:
        latest = _version_text(package.latest_version_id)
        if package.needs_update:
            latest = f"[green]{latest}[/green]"
        table.add_row(
            package.id,
            package.display_name,
            _version_text(package.current_version_id),
            latest,
            ', '.join(package.installed_folder_names),
            'on' if package.allow_updates else '[yellow]held[/yellow]'
        )
    console.print(table)


def render_check_results(results):
    table = Table(box=box.SIMPLE, show_header=True, header_style="bold")
    table.add_column("Name")
    table.add_column("Installed")
    table.add_column("Latest")
    table.add_column("Status")

    for result in results:
        if result['error']:
            status = f"[red]{result['error']}[/red]"
        elif result['needs_update']:
            status = "[green]update available[/green]"
        else:
            status = "up to date"
        table.add_row(result['name'], _version_text(result['current_version']),
                      _version_text(result['latest_version']), status)
    console.print(table)


def render_existing(entries):
    if not entries:
        console.print("[yellow]No unmanaged addons found.[/yellow]")
        return

    table = Table(box=box.SIMPLE, show_header=True, header_style="bold")
    table.add_column("Folder")
    table.add_column("Title")
    table.add_column("Version")
    table.add_column("Related folders")
    table.add_column("Suggested repository")

    for entry in entries:
        suggestion = entry.suggested_references[0].url if entry.suggested_references else '-'
        related = ', '.join(entry.related_folders[1:]) if entry.is_grouped else '-'
        table.add_row(entry.folder_name, entry.title, entry.version, related, suggestion)
    console.print(table)


@click.group()
@click.option('--data-dir', type=click.Path(file_okay=False),
              help='Directory holding addon-manager.json (default: $WOW_ADDON_MANAGER_HOME or ~/.wow-addon-manager)')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.version_option(__version__, prog_name='wow-addon-manager')
@click.pass_context
def cli(ctx, data_dir, verbose):
    """wow-addon-manager - Install and update WoW addons from GitHub and GitLab."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s'
    )
    obj = ctx.ensure_object(dict)
    obj.setdefault('data_dir', resolve_data_dir(data_dir))


@cli.group('config')
def config_cmd():
    """Show or change settings."""
    pass


@config_cmd.command('set-path')
@click.argument('wow_path', type=click.Path())
@click.pass_context
@handle_errors
def config_set_path(ctx, wow_path):
    """Set the World of Warcraft installation directory."""
    path = get_manager(ctx).set_wow_path(wow_path)
    click.echo(f"WoW path set to {path}")


@config_cmd.command('set-token')
@click.argument('platform', type=click.Choice(['github', 'gitlab']))
@click.argument('token')
@click.pass_context
def config_set_token(ctx, platform, token):
    """Store an API token used for GitHub/GitLab requests."""
    get_manager(ctx).package_tracker.set_setting(f'{platform}_token', token)
    click.echo(f"{platform} token saved (applies from the next command)")


@config_cmd.command('show')
@click.pass_context
def config_show(ctx):
    """Print the current settings."""
    manager = get_manager(ctx)
    settings = dict(manager.package_tracker.get_all_settings())
    for key in ('github_token', 'gitlab_token'):
        if settings.get(key):
            settings[key] = '********'
    settings.setdefault('wow_path', '(not set)')
    settings.setdefault('temp_path', str(manager.temp_dir))
    for key, value in sorted(settings.items()):
        click.echo(f"{key}: {value}")


@cli.command('add')
@click.argument('url')
@click.option('--folder-name', help='Install a single-folder addon under this name')
@click.option('--asset', 'asset_name', help='Release asset to download')
@click.option('--prefer-code', is_flag=True, help='Install the default branch head instead of a release')
@click.pass_context
@handle_errors
def add_cmd(ctx, url, folder_name, asset_name, prefer_code):
    """Install an addon from a GitHub or GitLab repository URL."""
    priority = DownloadPriority.PREFER_CODE if prefer_code else DownloadPriority.PREFER_RELEASES
    package = get_manager(ctx).add_addon(url, custom_folder_name=folder_name,
                                         asset_name=asset_name, priority=priority)
    click.echo(f"Installed {package.display_name} {package.current_version_id} "
               f"({', '.join(package.installed_folder_names)})")


@cli.command('list')
@click.pass_context
def list_cmd(ctx):
    """List managed addons."""
    render_packages(get_manager(ctx).package_tracker.get_all_packages())


@cli.command('check')
@click.option('--refresh', is_flag=True, help='Ignore cached release lookups')
@click.pass_context
def check_cmd(ctx, refresh):
    """Check every managed addon for a newer version."""
    results = get_manager(ctx).check_for_updates(refresh=refresh)
    if not results:
        console.print("[yellow]No managed addons.[/yellow]")
        return
    render_check_results(results)
    available = sum(1 for r in results if r['needs_update'])
    click.echo(f"{available} update(s) available")


@cli.command('update')
@click.argument('package_id', required=False)
@click.option('--all', 'update_all', is_flag=True, help='Update every addon flagged by the last check')
@click.option('--force', is_flag=True, help='Reinstall even if already up to date')
@click.pass_context
@handle_errors
def update_cmd(ctx, package_id, update_all, force):
    """Update one addon, or all addons with --all."""
    manager = get_manager(ctx)
    if update_all == bool(package_id):
        raise click.UsageError('Pass either an addon ID or --all')

    if package_id:
        result = manager.update_addon(package_id, force=force)
        click.echo(result['message'])
        return

    manager.check_for_updates()
    results = manager.update_all()
    for failed_id, error in results['failed'].items():
        click.echo(f"{failed_id} failed: {error}", err=True)
    click.echo(f"Updated {len(results['updated'])}, failed {len(results['failed'])}, "
               f"skipped {len(results['skipped'])}")
    if results['failed']:
        ctx.exit(1)


@cli.command('remove')
@click.argument('package_id')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
@handle_errors
def remove_cmd(ctx, package_id, yes):
    """Remove an addon and delete its folders."""
    manager = get_manager(ctx)
    if not yes:
        click.confirm(f"Remove {package_id} and delete its folders?", abort=True)
    removed = manager.remove_addon(package_id)
    click.echo(f"Removed {package_id} ({', '.join(removed) or 'no folders on disk'})")


@cli.command('pin')
@click.argument('package_id')
@click.option('--off', 'unpin', is_flag=True, help='Allow updates again')
@click.pass_context
@handle_errors
def pin_cmd(ctx, package_id, unpin):
    """Hold an addon at its installed version."""
    package = get_manager(ctx).set_allow_updates(package_id, unpin)
    state = 'allowed' if package.allow_updates else 'held'
    click.echo(f"Updates for {package.display_name} {state}")


@cli.command('priority')
@click.argument('package_id')
@click.argument('priority', type=click.Choice(sorted(PRIORITY_CHOICES)))
@click.pass_context
@handle_errors
def priority_cmd(ctx, package_id, priority):
    """Choose between releases and the default branch for an addon."""
    package = get_manager(ctx).set_download_priority(package_id, PRIORITY_CHOICES[priority])
    click.echo(f"{package.display_name} now prefers {priority}")


@cli.command('scan')
@click.pass_context
@handle_errors
def scan_cmd(ctx):
    """Find installed addons that are not managed yet."""
    render_existing(get_manager(ctx).scan_existing())


@cli.command('adopt')
@click.argument('folder')
@click.argument('url', required=False)
@click.pass_context
@handle_errors
def adopt_cmd(ctx, folder, url):
    """Manage an installed addon folder (and its related folders).

    URL defaults to the repository linked from the addon's .toc file.
    """
    manager = get_manager(ctx)
    entry = next((e for e in manager.scan_existing() if folder in e.related_folders), None)
    if entry is None:
        raise click.ClickException(f'No unmanaged addon folder named "{folder}"')

    if not url:
        if not entry.suggested_references:
            raise click.ClickException(f'{entry.title} does not link to a repository; pass its URL')
        url = entry.suggested_references[0].url

    package = manager.add_existing(entry, url)
    click.echo(f"Now managing {package.display_name} from {package.repo_url}")


@cli.command('export')
@click.argument('output_file', type=click.Path(dir_okay=False))
@click.pass_context
def export_cmd(ctx, output_file):
    """Export the addon list to a JSON file."""
    if not get_manager(ctx).export_addon_list(output_file):
        raise click.ClickException(f'Could not write {output_file}')
    click.echo(f"Exported addon list to {output_file}")


@cli.command('import')
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
@handle_errors
def import_cmd(ctx, input_file):
    """Install every addon of an exported list."""
    try:
        results = get_manager(ctx).import_addon_list(input_file)
    except ValueError as e:
        raise click.ClickException(str(e))
    for url, error in results['failed'].items():
        click.echo(f"{url} failed: {error}", err=True)
    click.echo(f"Added {len(results['added'])}, already managed {len(results['skipped'])}, "
               f"failed {len(results['failed'])}")


@cli.command('verify')
@click.pass_context
@handle_errors
def verify_cmd(ctx):
    """Report managed addons whose folders are missing."""
    missing = get_manager(ctx).check_installed_folders()
    if not missing:
        click.echo("All managed folders are present")
        return
    for package_id, folders in sorted(missing.items()):
        click.echo(f"{package_id}: missing {', '.join(folders)}")
    ctx.exit(1)


@cli.group('catalog')
def catalog_cmd():
    """Browse and install curated addons."""
    pass


@catalog_cmd.command('list')
@click.option('--category', type=click.Choice(CATEGORIES), help='Only show this category')
@click.pass_context
def catalog_list(ctx, category):
    """List catalog addons and whether they are installed."""
    tracker = get_manager(ctx).package_tracker
    entries = [e for e in HANDY_ADDONS if not category or e.category == category]

    table = Table(box=box.SIMPLE, show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Dependencies")
    table.add_column("Installed")

    for entry in entries:
        installed = tracker.find_by_reference(parse_repository_url(entry.repo_url)) is not None
        table.add_row(entry.id, entry.name, entry.category,
                      ', '.join(entry.dependencies) or '-',
                      '[green]yes[/green]' if installed else 'no')
    console.print(table)


@catalog_cmd.command('install')
@click.argument('catalog_id')
@click.pass_context
@handle_errors
def catalog_install(ctx, catalog_id):
    """Install a catalog addon and its dependencies."""
    results = get_manager(ctx).install_with_dependencies(catalog_id)
    for dependency_id in results['unknown']:
        click.echo(f"Unknown dependency {dependency_id} ignored", err=True)
    for failed_id, error in results['failed'].items():
        click.echo(f"{failed_id} failed: {error}", err=True)
    click.echo(f"Installed {len(results['installed'])}, already managed {len(results['skipped'])}, "
               f"failed {len(results['failed'])}")
    if results['failed']:
        ctx.exit(1)


def main():
    cli()


if __name__ == "__main__":
    main()
