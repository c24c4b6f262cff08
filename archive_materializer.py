"""
Archive Materializer
Downloads a resolved release archive, extracts it and installs every addon
folder it contains into the AddOns directory
"""

import logging
import re
from datetime import datetime
from pathlib import Path

from errors import (DownloadFailed, ExtractFailed, FilesystemConflict,
                    NoManifestFound)
from folder_structure_detector import FolderStructureDetector
from http_transport import DOWNLOAD_TIMEOUT
from package_tracker import ManagedPackage
from toc_parser import UNKNOWN

logger = logging.getLogger(__name__)

UNSAFE_FILENAME_CHARS = re.compile(r'[^A-Za-z0-9._-]+')


def scratch_names(reference, version_id):
    """Deterministic scratch file and folder names for one install.

    Args:
        reference: RepositoryReference - Source repository
        version_id: str - Version being installed

    Returns:
        tuple - (archive file name, extraction folder name)
    """
    safe_version = UNSAFE_FILENAME_CHARS.sub('_', version_id or 'unknown')
    return f'{reference.package_id}-{safe_version}.zip', f'extract-{reference.package_id}'


class ArchiveMaterializer:
    def __init__(self, transport, filesystem, addons_dir, temp_dir, detector=None):
        """Initialize archive materializer.

        Args:
            transport: HttpTransport - Streams archives to disk
            filesystem: LocalFileSystem - Disk operations and zip extraction
            addons_dir: str/Path - WoW Interface/AddOns directory
            temp_dir: str/Path - Scratch directory for downloads and extraction
            detector: Optional FolderStructureDetector - Addon folder heuristics
        """
        self.transport = transport
        self.filesystem = filesystem
        self.addons_dir = Path(addons_dir)
        self.temp_dir = Path(temp_dir)
        self.detector = detector or FolderStructureDetector()

    def _cleanup(self, archive_path, extract_path):
        try:
            self.filesystem.delete_file(archive_path)
        except OSError as e:
            logger.error("Failed to remove %s: %s", archive_path, e)
        try:
            self.filesystem.remove_recursive(extract_path)
        except (OSError, FilesystemConflict) as e:
            logger.error("Failed to remove %s: %s", extract_path, e)

    def _download(self, artifact, archive_path, cancel_event):
        try:
            self.transport.download(artifact.download_url, archive_path,
                                    timeout=DOWNLOAD_TIMEOUT, cancel_event=cancel_event)
        except OSError as e:
            raise DownloadFailed(f'Download failed: {e}')

    def _copy_folder(self, source, folder_name):
        destination = self.addons_dir / folder_name
        if self.filesystem.exists(destination):
            self.filesystem.remove_recursive(destination)
        try:
            self.filesystem.copy_recursive(source, destination)
        except OSError as e:
            raise FilesystemConflict(f'Cannot install "{folder_name}": {e}')

    def install(self, reference, artifact, custom_folder_name=None, asset_name_preference=None, cancel_event=None):
        """Install a release archive into the AddOns directory.

        Existing folders with the same names are replaced, not merged.

        Args:
            reference: RepositoryReference - Source repository
            artifact: ReleaseArtifact - Archive to install
            custom_folder_name: Optional str - Folder name for single-folder archives
            asset_name_preference: Optional str - Recorded on the package for updates
            cancel_event: Optional threading.Event - Cancels the download

        Returns:
            ManagedPackage - New package record (not yet saved)

        Raises:
            DownloadFailed, ExtractFailed, NoManifestFound, FilesystemConflict
        """
        self.filesystem.mkdir(self.temp_dir)
        self.filesystem.mkdir(self.addons_dir)

        archive_name, extract_name = scratch_names(reference, artifact.version_id)
        archive_path = self.temp_dir / archive_name
        extract_path = self.temp_dir / extract_name

        try:
            # Leftovers from an interrupted install of the same package
            self.filesystem.remove_recursive(extract_path)

            logger.info("Downloading %s %s from %s", reference, artifact.version_id, artifact.download_url)
            self._download(artifact, archive_path, cancel_event)

            self.filesystem.extract_archive(archive_path, extract_path)

            addon_folders = list(self.detector.iter_addon_folders(extract_path))
            if not addon_folders:
                raise NoManifestFound(f'No addon folders with .toc files found in the archive for {reference}')

            single = len(addon_folders) == 1
            plan = []
            for relative_path in addon_folders:
                folder_name = self.detector.resolve_folder_name(
                    extract_path / relative_path,
                    relative_path,
                    repo_name=reference.name,
                    custom_folder_name=custom_folder_name if single else None
                )
                if folder_name in (name for _, name in plan):
                    logger.warning("Archive for %s has two folders named %s; keeping the first", reference, folder_name)
                    continue
                plan.append((extract_path / relative_path, folder_name))

            installed_folders = []
            for source, folder_name in plan:
                self._copy_folder(source, folder_name)
                installed_folders.append(folder_name)
                logger.info("Installed folder %s", folder_name)

            index, manifest = self.detector.select_primary_folder(self.addons_dir, installed_folders, reference)
            if index:
                installed_folders.insert(0, installed_folders.pop(index))

            display_name = reference.name
            if manifest is not None and manifest.title != UNKNOWN:
                display_name = manifest.title

            return ManagedPackage(
                id=reference.package_id,
                display_name=display_name,
                reference=reference,
                current_version_id=artifact.version_id,
                latest_version_id=artifact.version_id,
                installed_folder_names=installed_folders,
                custom_folder_name=custom_folder_name,
                asset_name_preference=asset_name_preference,
                discovery_tier=artifact.discovery_tier.value,
                last_updated=datetime.now().isoformat()
            )
        except (DownloadFailed, ExtractFailed, NoManifestFound, FilesystemConflict):
            raise
        except OSError as e:
            raise ExtractFailed(f'Failed to install {reference}: {e}')
        finally:
            self._cleanup(archive_path, extract_path)
