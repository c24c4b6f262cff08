"""
Package Tracker
Manages the addon-manager.json registry of managed addons and settings
"""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from errors import InvalidReference
from release_resolver import DownloadPriority
from repo_reference import Platform, RepositoryReference, parse_repository_url

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
REGISTRY_FILENAME = 'addon-manager.json'
ADDONS_KEY = 'addons'


@dataclass
class ManagedPackage:
    id: str
    display_name: str
    reference: RepositoryReference
    current_version_id: str = None
    latest_version_id: str = None
    installed_folder_names: list = field(default_factory=list)
    allow_updates: bool = True
    custom_folder_name: str = None
    download_priority: DownloadPriority = DownloadPriority.PREFER_RELEASES
    imported: bool = False
    asset_name_preference: str = None
    needs_update: bool = False
    discovery_tier: str = None
    last_updated: str = None
    last_error: str = None

    @property
    def repo_url(self):
        return self.reference.url

    def to_dict(self):
        """Convert to the registry's JSON representation."""
        return {
            'id': self.id,
            'display_name': self.display_name,
            'repo_url': self.reference.url,
            'reference': {
                'platform': self.reference.platform.value,
                'owner': self.reference.owner,
                'name': self.reference.name,
            },
            'current_version_id': self.current_version_id,
            'latest_version_id': self.latest_version_id,
            'installed_folder_names': list(self.installed_folder_names),
            'allow_updates': self.allow_updates,
            'custom_folder_name': self.custom_folder_name,
            'download_priority': self.download_priority.value,
            'imported': self.imported,
            'asset_name_preference': self.asset_name_preference,
            'needs_update': self.needs_update,
            'discovery_tier': self.discovery_tier,
            'last_updated': self.last_updated,
            'last_error': self.last_error,
        }

    @classmethod
    def from_dict(cls, data):
        """Create from the registry's JSON representation."""
        ref = data.get('reference')
        if ref:
            reference = RepositoryReference(Platform(ref['platform']), ref['owner'], ref['name'])
        else:
            reference = parse_repository_url(data['repo_url'])

        return cls(
            id=data.get('id') or reference.package_id,
            display_name=data.get('display_name') or reference.name,
            reference=reference,
            current_version_id=data.get('current_version_id'),
            latest_version_id=data.get('latest_version_id'),
            installed_folder_names=list(dict.fromkeys(data.get('installed_folder_names') or [])),
            allow_updates=data.get('allow_updates', True),
            custom_folder_name=data.get('custom_folder_name'),
            download_priority=DownloadPriority(data.get('download_priority') or DownloadPriority.PREFER_RELEASES),
            imported=data.get('imported', False),
            asset_name_preference=data.get('asset_name_preference'),
            needs_update=data.get('needs_update', False),
            discovery_tier=data.get('discovery_tier'),
            last_updated=data.get('last_updated'),
            last_error=data.get('last_error'),
        )


def _migrate_v0_addon(addon):
    """Convert a pre-versioned (camelCase) addon record to the current layout."""
    priority = DownloadPriority.PREFER_RELEASES
    if addon.get('downloadPriority') in ('code', 'prefer-code', DownloadPriority.PREFER_CODE.value):
        priority = DownloadPriority.PREFER_CODE
    return {
        'id': addon.get('id'),
        'display_name': addon.get('name'),
        'repo_url': addon.get('repoUrl'),
        'current_version_id': addon.get('currentVersion'),
        'latest_version_id': addon.get('latestVersion'),
        'installed_folder_names': addon.get('installedFolders') or [],
        'allow_updates': addon.get('allowUpdates', True),
        'custom_folder_name': addon.get('customFolderName'),
        'download_priority': priority.value,
        'imported': addon.get('imported', False),
        'asset_name_preference': addon.get('preferredAssetName'),
        'needs_update': addon.get('needsUpdate', False),
        'discovery_tier': addon.get('source'),
        'last_updated': addon.get('lastUpdated'),
    }


class PackageTracker:
    def __init__(self, data_dir):
        self.data_dir = Path(data_dir)
        self.tracker_file = self.data_dir / REGISTRY_FILENAME
        self.packages = self._load_packages()

    def _load_packages(self):
        """Load and migrate the registry document"""
        if not self.tracker_file.exists():
            return self._create_empty_structure()

        try:
            with open(self.tracker_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Failed to read %s, starting with an empty registry: %s", self.tracker_file, e)
            return self._create_empty_structure()

        data = self._migrate(data)

        addons = []
        for entry in data.get(ADDONS_KEY, []):
            try:
                addons.append(ManagedPackage.from_dict(entry))
            except (KeyError, ValueError, InvalidReference) as e:
                logger.warning("Skipping unreadable registry entry %r: %s", entry.get('id'), e)
        data[ADDONS_KEY] = self._sorted(addons)
        return data

    def _migrate(self, data):
        """Upgrade older registry documents to SCHEMA_VERSION"""
        version = data.get('schema_version', 0)
        if version == 0:
            logger.info("Migrating registry %s to schema version %d", self.tracker_file, SCHEMA_VERSION)
            data = {
                'schema_version': SCHEMA_VERSION,
                'last_updated': data.get('last_updated'),
                ADDONS_KEY: [_migrate_v0_addon(a) for a in data.get(ADDONS_KEY, []) if a.get('repoUrl')],
                'settings': data.get('settings', {}),
            }
        elif version > SCHEMA_VERSION:
            logger.warning("Registry schema %d is newer than supported %d", version, SCHEMA_VERSION)
        data.setdefault('settings', {})
        return data

    def _create_empty_structure(self):
        """Create empty registry structure"""
        return {
            'schema_version': SCHEMA_VERSION,
            'last_updated': datetime.now().isoformat(),
            ADDONS_KEY: [],
            'settings': {}
        }

    def _sorted(self, addons):
        return sorted(addons, key=lambda a: (a.display_name or '').lower())

    def save_packages(self):
        """Save the registry to addon-manager.json"""
        self.packages[ADDONS_KEY] = self._sorted(self.packages[ADDONS_KEY])
        self.packages['last_updated'] = datetime.now().isoformat()
        document = dict(self.packages)
        document[ADDONS_KEY] = [addon.to_dict() for addon in self.packages[ADDONS_KEY]]

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            temp_file = self.tracker_file.with_suffix('.json.tmp')
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
            os.replace(temp_file, self.tracker_file)
            return True
        except OSError as e:
            logger.error("Error saving packages: %s", e)
            return False

    def add_package(self, package):
        """Add or replace a managed package"""
        self.packages[ADDONS_KEY] = [a for a in self.packages[ADDONS_KEY] if a.id != package.id]
        self.packages[ADDONS_KEY].append(package)
        return self.save_packages()

    def update_package(self, package):
        """Persist changes made to a managed package in place"""
        if not self.package_exists(package.id):
            return False
        return self.add_package(package)

    def remove_package(self, package_id):
        """Remove a package from the tracker"""
        remaining = [a for a in self.packages[ADDONS_KEY] if a.id != package_id]
        if len(remaining) == len(self.packages[ADDONS_KEY]):
            return False
        self.packages[ADDONS_KEY] = remaining
        return self.save_packages()

    def get_package(self, package_id):
        """Get a managed package by id"""
        return next((a for a in self.packages[ADDONS_KEY] if a.id == package_id), None)

    def find_by_reference(self, reference):
        """Get the managed package installed from a repository, if any"""
        return next((a for a in self.packages[ADDONS_KEY] if a.reference == reference), None)

    def get_all_packages(self):
        """Get all managed packages sorted by display name"""
        return list(self.packages[ADDONS_KEY])

    def package_exists(self, package_id):
        return self.get_package(package_id) is not None

    def get_package_count(self):
        return len(self.packages[ADDONS_KEY])

    def managed_folder_names(self):
        """Folder names owned by any managed package"""
        folders = set()
        for addon in self.packages[ADDONS_KEY]:
            folders.update(addon.installed_folder_names)
        return folders

    def export_packages(self, output_file):
        """Export the addon list (repository URLs and install options) to a file"""
        document = {
            'schema_version': SCHEMA_VERSION,
            ADDONS_KEY: [
                {
                    'repo_url': addon.repo_url,
                    'display_name': addon.display_name,
                    'custom_folder_name': addon.custom_folder_name,
                    'asset_name_preference': addon.asset_name_preference,
                    'download_priority': addon.download_priority.value,
                }
                for addon in self.packages[ADDONS_KEY]
            ]
        }
        try:
            with open(output_file, 'w', encoding='utf-8') as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
            return True
        except OSError as e:
            logger.error("Failed to export addon list to %s: %s", output_file, e)
            return False

    def read_export(self, input_file):
        """Read an exported addon list.

        Returns:
            list - Entries with repo_url and install options

        Raises:
            ValueError: If the file is not an exported addon list
        """
        with open(input_file, 'r', encoding='utf-8') as f:
            imported = json.load(f)

        if not isinstance(imported, dict) or not isinstance(imported.get(ADDONS_KEY), list):
            raise ValueError(f'{input_file} is not an exported addon list')
        return [entry for entry in imported[ADDONS_KEY] if isinstance(entry, dict) and entry.get('repo_url')]

    def get_setting(self, key, default=None):
        """Get a setting value"""
        return self.packages['settings'].get(key, default)

    def set_setting(self, key, value):
        """Set a setting value"""
        self.packages['settings'][key] = value
        return self.save_packages()

    def get_all_settings(self):
        """Get all settings"""
        return self.packages['settings']
