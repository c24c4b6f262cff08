"""
Installation Scanner
Finds addons already present in the AddOns directory that are not managed yet
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from errors import InvalidReference
from repo_reference import parse_repository_url
from toc_parser import UNKNOWN, ManifestMetadata, find_toc_files, parse_toc_file

logger = logging.getLogger(__name__)

RESERVED_PREFIXES = ('Blizzard_',)
OS_METADATA_NAMES = {'.DS_Store', 'Thumbs.db', 'desktop.ini'}

REPOSITORY_URL_PATTERN = re.compile(r'https?://(?:www\.)?(?:github\.com|gitlab\.com)/[^\s)\]"\'<>|]+', re.IGNORECASE)
TRAILING_PUNCTUATION = re.compile(r'[.,;:)]+$')


@dataclass
class ExistingEntry:
    folder_name: str
    manifest: ManifestMetadata
    related_folders: list = field(default_factory=list)
    is_grouped: bool = False
    suggested_references: list = field(default_factory=list)
    last_modified: datetime = None

    def __post_init__(self):
        if not self.related_folders:
            self.related_folders = [self.folder_name]

    @property
    def title(self):
        if self.manifest.title and self.manifest.title != UNKNOWN:
            return self.manifest.title
        return self.folder_name

    @property
    def version(self):
        return self.manifest.version


def suggest_references(manifest):
    """Find repository references mentioned in a manifest's free-text fields.

    Args:
        manifest: ManifestMetadata - Parsed manifest

    Returns:
        list - Unique RepositoryReference values in order of appearance
    """
    suggestions = []
    for match in REPOSITORY_URL_PATTERN.findall(manifest.free_text()):
        url = TRAILING_PUNCTUATION.sub('', match)
        try:
            reference = parse_repository_url(url)
        except InvalidReference:
            continue
        if reference not in suggestions:
            suggestions.append(reference)
    return suggestions


class InstallationScanner:
    def __init__(self, filesystem):
        self.filesystem = filesystem

    def is_reserved(self, name):
        """Check whether a folder belongs to the game client or the OS."""
        return name in OS_METADATA_NAMES or name.startswith('.') or name.startswith(RESERVED_PREFIXES)

    def _main_manifest(self, folder_path, toc_files):
        folder_lower = folder_path.name.lower()
        for toc in toc_files:
            if toc.stem.lower() == folder_lower:
                return toc
        return toc_files[0]

    def scan(self, addons_dir):
        """Scan the AddOns directory for addon folders.

        Args:
            addons_dir: str/Path - Installation root

        Returns:
            list - ExistingEntry per folder with at least one .toc file
        """
        addons_dir = Path(addons_dir)
        if not self.filesystem.is_dir(addons_dir):
            return []

        entries = []
        for item in self.filesystem.read_dir(addons_dir):
            if not item.is_dir or self.is_reserved(item.name):
                continue

            folder_path = addons_dir / item.name
            try:
                toc_files = find_toc_files(folder_path)
                if not toc_files:
                    continue

                manifest = parse_toc_file(self._main_manifest(folder_path, toc_files))
                stats = self.filesystem.stat(folder_path)
                entries.append(ExistingEntry(
                    folder_name=item.name,
                    manifest=manifest,
                    suggested_references=suggest_references(manifest),
                    last_modified=stats.mtime if stats else None
                ))
            except OSError as e:
                logger.warning("Error scanning addon folder %s: %s", item.name, e)

        logger.info("Found %d addon folders in %s", len(entries), addons_dir)
        return entries
