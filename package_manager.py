"""
Package Manager
Handles installation, updates, removal and adoption of WoW addons
"""

import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path

from addon_catalog import catalog_by_id, install_order
from archive_materializer import ArchiveMaterializer
from errors import (AddonManagerError, ConfigurationMissing, PackageAlreadyManaged,
                    PackageNotFound, ResolutionExhausted)
from filesystem import LocalFileSystem
from folder_grouper import RelatedFolderGrouper
from http_transport import HttpTransport
from installation_scanner import InstallationScanner
from package_tracker import ManagedPackage
from release_resolver import DownloadPriority, ReleaseResolver, ResolverContext
from repo_reference import parse_repository_url
from toc_parser import UNKNOWN
from version_reconciler import needs_update

logger = logging.getLogger(__name__)

DATA_DIR_ENV = 'WOW_ADDON_MANAGER_HOME'
DEFAULT_DATA_DIR = Path.home() / '.wow-addon-manager'
ADDONS_SUBDIR = Path('Interface') / 'AddOns'
DEFAULT_TEMP_DIR = Path(tempfile.gettempdir()) / 'wow-addon-manager'


def resolve_data_dir(override=None):
    """Directory holding addon-manager.json.

    Args:
        override: Optional str/Path - Explicit directory (e.g. from --data-dir)

    Returns:
        Path - override, else $WOW_ADDON_MANAGER_HOME, else ~/.wow-addon-manager
    """
    if override:
        return Path(override).expanduser()
    from_env = os.environ.get(DATA_DIR_ENV)
    if from_env:
        return Path(from_env).expanduser()
    return DEFAULT_DATA_DIR


def _is_cancelled(cancel_event):
    return cancel_event is not None and cancel_event.is_set()


class PackageManager:
    def __init__(self, package_tracker, transport=None, filesystem=None, resolver=None):
        """Initialize package manager.

        Args:
            package_tracker: PackageTracker - Registry of managed addons and settings
            transport: Optional HttpTransport - Built from the token settings if omitted
            filesystem: Optional LocalFileSystem - Disk operations
            resolver: Optional ReleaseResolver - Shares one ResolverContext per manager
        """
        self.package_tracker = package_tracker
        self.filesystem = filesystem or LocalFileSystem()
        self.transport = transport or HttpTransport(
            github_token=self.get_token('github_token'),
            gitlab_token=self.get_token('gitlab_token')
        )
        self.resolver = resolver or ReleaseResolver(ResolverContext(self.transport))
        self.scanner = InstallationScanner(self.filesystem)
        self.grouper = RelatedFolderGrouper()

    def get_token(self, key):
        """API token from settings; HttpTransport falls back to the environment."""
        return self.package_tracker.get_setting(key)

    @property
    def wow_path(self):
        wow_path = self.package_tracker.get_setting('wow_path')
        if not wow_path:
            raise ConfigurationMissing('WoW installation path is not set (run "config set-path")')
        return Path(wow_path)

    @property
    def addons_dir(self):
        return self.wow_path / ADDONS_SUBDIR

    @property
    def temp_dir(self):
        return Path(self.package_tracker.get_setting('temp_path') or DEFAULT_TEMP_DIR)

    def set_wow_path(self, wow_path):
        """Store the WoW installation root.

        Raises:
            ConfigurationMissing: If the directory does not exist
        """
        wow_path = Path(wow_path).expanduser()
        if not self.filesystem.is_dir(wow_path):
            raise ConfigurationMissing(f'WoW installation path does not exist: {wow_path}')
        self.package_tracker.set_setting('wow_path', str(wow_path))
        return wow_path

    def _materializer(self):
        return ArchiveMaterializer(self.transport, self.filesystem, self.addons_dir, self.temp_dir)

    def _require(self, package_id):
        package = self.package_tracker.get_package(package_id)
        if package is None:
            raise PackageNotFound(f'No managed addon with id "{package_id}"')
        return package

    def _ensure_not_managed(self, reference):
        existing = self.package_tracker.find_by_reference(reference)
        if existing is not None:
            raise PackageAlreadyManaged(f'{reference} is already managed as "{existing.display_name}"')

    def _warn_shared_folders(self, package):
        for other in self.package_tracker.get_all_packages():
            if other.id == package.id:
                continue
            shared = set(other.installed_folder_names) & set(package.installed_folder_names)
            if shared:
                logger.warning("%s overwrote folders of %s: %s",
                               package.display_name, other.display_name, ', '.join(sorted(shared)))

    def add_addon(self, url, custom_folder_name=None, asset_name=None,
                  priority=DownloadPriority.PREFER_RELEASES, cancel_event=None):
        """Resolve, download and install an addon from a repository URL.

        Args:
            url: str - GitHub/GitLab repository URL
            custom_folder_name: Optional str - Folder name for single-folder addons
            asset_name: Optional str - Release asset to prefer
            priority: DownloadPriority - PREFER_CODE installs the default branch head
            cancel_event: Optional threading.Event - Cancels network calls

        Returns:
            ManagedPackage - Saved package record

        Raises:
            InvalidReference, PackageAlreadyManaged, ResolutionExhausted,
            DownloadFailed, ExtractFailed, NoManifestFound, FilesystemConflict,
            ConfigurationMissing
        """
        reference = parse_repository_url(url)
        self._ensure_not_managed(reference)
        priority = DownloadPriority(priority)
        materializer = self._materializer()

        artifact = self.resolver.resolve(reference, asset_name, priority, cancel_event)
        package = materializer.install(
            reference, artifact,
            custom_folder_name=custom_folder_name,
            asset_name_preference=asset_name,
            cancel_event=cancel_event
        )
        package.download_priority = priority

        self._warn_shared_folders(package)
        self.package_tracker.add_package(package)
        logger.info("Installed %s %s (%s)", package.display_name, package.current_version_id,
                    ', '.join(package.installed_folder_names))
        return package

    def _remove_stale_folders(self, old_folders, new_folders):
        removed = []
        for folder_name in old_folders:
            if folder_name in new_folders:
                continue
            path = self.addons_dir / folder_name
            if self.filesystem.exists(path):
                self.filesystem.remove_recursive(path)
                removed.append(folder_name)
                logger.info("Removed folder %s (no longer shipped)", folder_name)
        return removed

    def update_addon(self, package_id, force=False, cancel_event=None):
        """Update one managed addon to its latest version.

        Args:
            package_id: str - Managed package id
            force: bool - Reinstall even when already up to date
            cancel_event: Optional threading.Event - Cancels network calls

        Returns:
            dict - Update result with keys:
            - package: ManagedPackage - Saved package record
            - already_updated: bool - True if nothing was installed
            - message: str - Human-readable summary

        Raises:
            PackageNotFound, and the errors of add_addon; the error text is also
            recorded on the package as last_error
        """
        package = self._require(package_id)
        try:
            materializer = self._materializer()
            artifact = self.resolver.resolve(
                package.reference, package.asset_name_preference, package.download_priority, cancel_event
            )
            package.latest_version_id = artifact.version_id

            if not force and not needs_update(package.current_version_id, artifact.version_id):
                package.needs_update = False
                package.last_error = None
                self.package_tracker.update_package(package)
                return {
                    'package': package,
                    'already_updated': True,
                    'message': f'{package.display_name} is already up to date ({package.current_version_id})'
                }

            if _is_cancelled(cancel_event):
                raise AddonManagerError(f'Update of {package.display_name} cancelled')

            installed = materializer.install(
                package.reference, artifact,
                custom_folder_name=package.custom_folder_name,
                asset_name_preference=package.asset_name_preference,
                cancel_event=cancel_event
            )
            self._remove_stale_folders(package.installed_folder_names, installed.installed_folder_names)
        except AddonManagerError as e:
            package.last_error = str(e)
            self.package_tracker.update_package(package)
            raise

        previous_version = package.current_version_id
        package.display_name = installed.display_name
        package.current_version_id = installed.current_version_id
        package.latest_version_id = installed.latest_version_id
        package.installed_folder_names = installed.installed_folder_names
        package.discovery_tier = installed.discovery_tier
        package.last_updated = installed.last_updated
        package.needs_update = False
        package.last_error = None
        self.package_tracker.update_package(package)

        logger.info("Updated %s from %s to %s", package.display_name, previous_version, package.current_version_id)
        return {
            'package': package,
            'already_updated': False,
            'message': f'{package.display_name} updated from {previous_version} to {package.current_version_id}'
        }

    def check_for_updates(self, refresh=False, cancel_event=None):
        """Resolve the latest version of every managed addon.

        Failures are recorded per addon and do not stop the check.

        Args:
            refresh: bool - Drop cached resolutions first
            cancel_event: Optional threading.Event - Stops between addons

        Returns:
            list - Result dict per checked addon with keys id, name,
            current_version, latest_version, needs_update, error
        """
        if refresh:
            self.resolver.context.clear_cache()

        results = []
        for package in self.package_tracker.get_all_packages():
            if _is_cancelled(cancel_event):
                logger.info("Update check cancelled")
                break

            error = None
            try:
                artifact = self.resolver.resolve(
                    package.reference, package.asset_name_preference, package.download_priority, cancel_event
                )
                package.latest_version_id = artifact.version_id
                package.needs_update = needs_update(package.current_version_id, artifact.version_id)
                package.last_error = None
            except AddonManagerError as e:
                logger.warning("Could not check %s: %s", package.display_name, e)
                error = package.last_error = str(e)

            results.append({
                'id': package.id,
                'name': package.display_name,
                'current_version': package.current_version_id,
                'latest_version': package.latest_version_id,
                'needs_update': package.needs_update,
                'error': error
            })

        self.package_tracker.save_packages()
        return results

    def get_update_candidates(self):
        """Packages flagged by the last check that allow updates"""
        return [p for p in self.package_tracker.get_all_packages() if p.needs_update and p.allow_updates]

    def update_all(self, cancel_event=None, progress=None):
        """Update every addon flagged by the last check, one at a time.

        Args:
            cancel_event: Optional threading.Event - Stops between addons
            progress: Optional callable(package, index, total) - Called before each addon

        Returns:
            dict - Batch result with keys:
            - updated: list - Ids of updated packages
            - skipped: list - Ids that turned out to be up to date
            - failed: dict - Id to error message
            - cancelled: bool
        """
        candidates = self.get_update_candidates()
        results = {'updated': [], 'skipped': [], 'failed': {}, 'cancelled': False}

        for index, package in enumerate(candidates):
            if _is_cancelled(cancel_event):
                results['cancelled'] = True
                logger.info("Batch update cancelled after %d of %d addons", index, len(candidates))
                break
            if progress:
                progress(package, index, len(candidates))

            try:
                result = self.update_addon(package.id, cancel_event=cancel_event)
            except AddonManagerError as e:
                logger.warning("Failed to update %s: %s", package.display_name, e)
                results['failed'][package.id] = str(e)
                continue

            if result['already_updated']:
                results['skipped'].append(package.id)
            else:
                results['updated'].append(package.id)

        return results

    def remove_addon(self, package_id):
        """Delete every installed folder of an addon and drop its record.

        Returns:
            list - Folder names that were deleted
        """
        package = self._require(package_id)
        removed = []
        for folder_name in package.installed_folder_names:
            path = self.addons_dir / folder_name
            if self.filesystem.exists(path):
                self.filesystem.remove_recursive(path)
                removed.append(folder_name)
            else:
                logger.warning("Folder %s of %s is already gone", folder_name, package.display_name)

        self.package_tracker.remove_package(package_id)
        logger.info("Removed %s", package.display_name)
        return removed

    def scan_existing(self):
        """Find unmanaged addons in the AddOns directory.

        Returns:
            list - Grouped ExistingEntry items, sorted by title
        """
        managed = self.package_tracker.managed_folder_names()
        entries = [e for e in self.scanner.scan(self.addons_dir) if e.folder_name not in managed]
        return self.grouper.group(entries)

    def add_existing(self, entry, url, cancel_event=None):
        """Start managing an addon that is already installed.

        Nothing is downloaded. The installed version comes from the manifest,
        the latest version from the resolver when it can be found.

        Args:
            entry: ExistingEntry - Scan result to adopt
            url: str - Repository the addon comes from
            cancel_event: Optional threading.Event - Cancels network calls

        Returns:
            ManagedPackage - Saved package record
        """
        reference = parse_repository_url(url)
        self._ensure_not_managed(reference)

        current_version = entry.version if entry.version and entry.version != UNKNOWN else None
        package = ManagedPackage(
            id=reference.package_id,
            display_name=entry.title,
            reference=reference,
            current_version_id=current_version,
            installed_folder_names=list(entry.related_folders),
            imported=True,
            last_updated=datetime.now().isoformat()
        )

        try:
            artifact = self.resolver.resolve(reference, cancel_event=cancel_event)
            package.latest_version_id = artifact.version_id
            package.discovery_tier = artifact.discovery_tier.value
            package.needs_update = needs_update(current_version, artifact.version_id)
        except ResolutionExhausted as e:
            logger.warning("Adopted %s without a latest version: %s", entry.title, e)
            package.last_error = str(e)

        self.package_tracker.add_package(package)
        logger.info("Adopted %s (%s)", package.display_name, ', '.join(package.installed_folder_names))
        return package

    def set_allow_updates(self, package_id, allow):
        package = self._require(package_id)
        package.allow_updates = bool(allow)
        self.package_tracker.update_package(package)
        return package

    def set_download_priority(self, package_id, priority):
        package = self._require(package_id)
        package.download_priority = DownloadPriority(priority)
        self.package_tracker.update_package(package)
        return package

    def check_installed_folders(self):
        """Report managed folders that no longer exist on disk.

        Returns:
            dict - Package id to list of missing folder names (only packages with gaps)
        """
        missing = {}
        for package in self.package_tracker.get_all_packages():
            gone = [f for f in package.installed_folder_names
                    if not self.filesystem.is_dir(self.addons_dir / f)]
            if gone:
                missing[package.id] = gone
        return missing

    def export_addon_list(self, output_file):
        return self.package_tracker.export_packages(output_file)

    def install_with_dependencies(self, catalog_id, catalog=None, cancel_event=None, progress=None):
        """Install a catalog addon after its dependencies.

        Dependencies are installed first, depth-first, each id at most once.
        Entries already managed are skipped; a failed or unknown dependency
        does not stop the remaining installs.

        Args:
            catalog_id: str - Catalog id of the requested addon
            catalog: Optional list - CatalogEntry items (defaults to the built-in catalog)
            cancel_event: Optional threading.Event - Stops between installs
            progress: Optional callable(entry, index, total) - Called before each install

        Returns:
            dict - Install result with keys:
            - installed: list - Catalog ids installed, in install order
            - skipped: list - Catalog ids already managed
            - failed: dict - Catalog id to error message
            - unknown: list - Dependency ids missing from the catalog
            - cancelled: bool

        Raises:
            PackageNotFound: If catalog_id is not in the catalog
        """
        if catalog_id not in catalog_by_id(catalog):
            raise PackageNotFound(f'No catalog addon with id "{catalog_id}"')

        order, unknown = install_order(catalog_id, catalog)
        results = {'installed': [], 'skipped': [], 'failed': {}, 'unknown': unknown, 'cancelled': False}
        for dependency_id in unknown:
            logger.warning("Unknown dependency %s of %s", dependency_id, catalog_id)

        for index, entry in enumerate(order):
            if _is_cancelled(cancel_event):
                results['cancelled'] = True
                break
            if progress:
                progress(entry, index, len(order))

            try:
                self.add_addon(
                    entry.repo_url,
                    custom_folder_name=entry.custom_folder_name,
                    asset_name=entry.asset_name_preference,
                    cancel_event=cancel_event
                )
            except PackageAlreadyManaged:
                results['skipped'].append(entry.id)
            except AddonManagerError as e:
                logger.warning("Failed to install %s: %s", entry.name, e)
                results['failed'][entry.id] = str(e)
            else:
                results['installed'].append(entry.id)

        return results

    def import_addon_list(self, input_file, cancel_event=None):
        """Install every addon of an exported list that is not managed yet.

        Returns:
            dict - Import result with keys added (ids), skipped (urls already
            managed), failed (url to error message)
        """
        results = {'added': [], 'skipped': [], 'failed': {}}
        for entry in self.package_tracker.read_export(input_file):
            if _is_cancelled(cancel_event):
                break
            url = entry['repo_url']
            try:
                package = self.add_addon(
                    url,
                    custom_folder_name=entry.get('custom_folder_name'),
                    asset_name=entry.get('asset_name_preference'),
                    priority=entry.get('download_priority') or DownloadPriority.PREFER_RELEASES,
                    cancel_event=cancel_event
                )
            except PackageAlreadyManaged:
                results['skipped'].append(url)
            except (AddonManagerError, ValueError) as e:
                logger.warning("Failed to import %s: %s", url, e)
                results['failed'][url] = str(e)
            else:
                results['added'].append(package.id)
        return results
