"""
Folder Structure Detector
Finds addon folders inside extracted archives and decides what each one should
be called once installed
"""

import re
from pathlib import Path

from toc_parser import find_toc_files, parse_toc_file

# Folders created by archive tools; never descended into
ARCHIVE_METADATA_FOLDERS = {'__MACOSX'}

# Addon folders shipped alongside the addon that are not installed
OPTIONAL_COMPONENT_FOLDERS = {'libs', 'tests', 'test', 'examples', 'example', 'docs'}

# Manifest name markers of secondary components (preferred last)
EXCLUDED_MANIFEST_MARKERS = ('options', 'config', 'locale')

BRANCH_SUFFIX = re.compile(r'-(main|master)$', re.IGNORECASE)

# Client flavor suffixes of multi-toc addons, e.g. MyAddon_Vanilla.toc
FLAVOR_SUFFIX = re.compile(
    r'[-_](mainline|classic|vanilla|tbc|bcc|wrath|wotlkc|cata|mists|mop|xptr|ptr)$',
    re.IGNORECASE
)


def _normalize_text(text):
    return re.sub(r'[^a-z0-9]', '', (text or '').lower())


class FolderStructureDetector:
    def is_archive_metadata(self, path):
        """Check whether a directory is archive-tool metadata (e.g. __MACOSX, .git)."""
        name = Path(path).name
        return name in ARCHIVE_METADATA_FOLDERS or name.startswith('.')

    def iter_addon_folders(self, source_path):
        """Lazily walk an extracted archive for folders holding .toc files.

        A folder with at least one .toc file is yielded and not descended into.
        Metadata folders are skipped before recursion.

        Args:
            source_path: str/Path - Extraction root

        Yields:
            Path - Folder path relative to source_path (Path('.') for the root itself)
        """
        source_path = Path(source_path)
        pending = [source_path]

        while pending:
            current = pending.pop(0)
            if find_toc_files(current):
                relative = current.relative_to(source_path)
                if current == source_path or relative.name.lower() not in OPTIONAL_COMPONENT_FOLDERS:
                    yield relative
                continue

            children = sorted(
                (child for child in current.iterdir()
                 if child.is_dir() and not self.is_archive_metadata(child)),
                key=lambda p: p.name.lower()
            )
            pending[0:0] = children

    def normalize_folder_name(self, name):
        """Strip branch suffixes GitHub/GitLab add to archive folders.

        Args:
            name: str - Folder name, e.g. "MyAddon-main-main"

        Returns:
            str - Name without trailing -main/-master suffixes
        """
        previous = None
        while previous != name:
            previous = name
            name = BRANCH_SUFFIX.sub('', name)
        return name

    def manifest_identity(self, toc_path):
        """Addon name declared by a .toc file (file stem without client flavor suffix)."""
        stem = Path(toc_path).stem
        return FLAVOR_SUFFIX.sub('', stem) or stem

    def _pick_manifest(self, toc_files, folder_name, repo_name):
        """Choose the .toc that names a multi-manifest addon folder.

        Args:
            toc_files: list - .toc Paths inside the folder
            folder_name: str - Normalized archive folder name
            repo_name: Optional str - Repository name

        Returns:
            Path - Chosen .toc file
        """
        folder_lower = (folder_name or '').lower()
        for toc in toc_files:
            if self.manifest_identity(toc).lower() == folder_lower or toc.stem.lower() == folder_lower:
                return toc

        if repo_name:
            repo_lower = repo_name.lower()
            for toc in toc_files:
                if self.manifest_identity(toc).lower() == repo_lower or toc.stem.lower() == repo_lower:
                    return toc

        for toc in toc_files:
            stem_lower = toc.stem.lower()
            if not any(marker in stem_lower for marker in EXCLUDED_MANIFEST_MARKERS):
                return toc

        return toc_files[0]

    def _name_for(self, toc, toc_files, folder_name):
        """Installed name for the .toc chosen among several; flavor variants of
        one addon (MyAddon_Mainline.toc, MyAddon_Vanilla.toc) share its name."""
        identity = self.manifest_identity(toc)
        identities = {self.manifest_identity(t).lower() for t in toc_files}
        if len(identities) == 1 or identity.lower() == (folder_name or '').lower():
            return identity
        return toc.stem

    def resolve_folder_name(self, source_folder, relative_path, repo_name=None, custom_folder_name=None):
        """Decide the installed name of one discovered addon folder.

        Args:
            source_folder: Path - Absolute path of the addon folder in the extraction
            relative_path: Path - Path relative to the extraction root
            repo_name: Optional str - Repository name
            custom_folder_name: Optional str - User-chosen name (single-folder archives only)

        Returns:
            str - Folder name to install under
        """
        if custom_folder_name:
            return custom_folder_name

        raw_name = relative_path.name if str(relative_path) != '.' else (repo_name or '')
        folder_name = self.normalize_folder_name(raw_name)

        toc_files = find_toc_files(source_folder)
        if len(toc_files) == 1:
            return toc_files[0].stem
        if toc_files:
            chosen = self._pick_manifest(toc_files, folder_name, repo_name)
            return self._name_for(chosen, toc_files, folder_name)
        return folder_name

    def select_primary_folder(self, addons_dir, folder_names, reference):
        """Pick the folder whose manifest best represents the package.

        Preference: a manifest linking to the repository, then a manifest whose
        title matches the repository name (or its first word), then the first
        folder with any manifest.

        Args:
            addons_dir: Path - Installation root
            folder_names: list - Installed folder names in install order
            reference: RepositoryReference - Source repository

        Returns:
            tuple - (index into folder_names or None, ManifestMetadata or None)
        """
        addons_dir = Path(addons_dir)
        repo_path = f'{reference.owner}/{reference.name}'.lower()
        repo_name = _normalize_text(reference.name)
        repo_first_word = _normalize_text(re.split(r'[-_]', reference.name)[0])

        manifests = []
        for index, folder_name in enumerate(folder_names):
            for toc in find_toc_files(addons_dir / folder_name):
                manifests.append((index, parse_toc_file(toc)))

        for index, manifest in manifests:
            links = f'{manifest.repository_url} {manifest.website_url}'.lower()
            if repo_path in links:
                return index, manifest

        for index, manifest in manifests:
            title = _normalize_text(manifest.title)
            if title and title in (repo_name, repo_first_word):
                return index, manifest

        if manifests:
            return manifests[0]
        return None, None
