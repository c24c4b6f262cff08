"""
TOC Parser
Parses addon .toc manifest files and sanitizes their display titles
"""

import logging
import re
from dataclasses import asdict, dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

MANIFEST_EXTENSION = '.toc'
UNKNOWN = 'Unknown'

# Manifest keys -> ManifestMetadata fields
TOC_KEYS = {
    'title': 'title',
    'version': 'version',
    'author': 'author',
    'interface': 'interface_version',
    'notes': 'notes',
    'x-website': 'website_url',
    'x-repository': 'repository_url',
}

COLOR_START = re.compile(r'\|c(?:[0-9a-fA-F]{8}|n[^:|]*:)')
COLOR_END = re.compile(r'\|r')
TEXTURE = re.compile(r'\|T.*?\|t')
ATLAS = re.compile(r'\|A.*?\|a')
HYPERLINK = re.compile(r'\|H.*?\|h(.*?)\|h')
NEWLINE = re.compile(r'\|n')
REPEATED_PUNCTUATION = re.compile(r'([^\w\s])\1+')
WHITESPACE = re.compile(r'\s+')


@dataclass(frozen=True)
class ManifestMetadata:
    title: str = UNKNOWN
    version: str = UNKNOWN
    author: str = UNKNOWN
    interface_version: str = UNKNOWN
    notes: str = UNKNOWN
    website_url: str = UNKNOWN
    repository_url: str = UNKNOWN

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        known = {key: value for key, value in (data or {}).items() if key in cls.__dataclass_fields__}
        return cls(**known)

    def free_text(self):
        """All fields that may carry repository links, joined for scanning."""
        values = [self.notes, self.title, self.author, self.website_url, self.repository_url]
        return ' '.join(value for value in values if value and value != UNKNOWN)


def sanitize_title(title):
    """Strip WoW UI escape sequences from a manifest title.

    Args:
        title: str - Raw Title value, e.g. "|cff00ff00My|r Addon"

    Returns:
        str - Plain title with whitespace and repeated punctuation collapsed
    """
    if not title:
        return title

    text = title.replace('||', '\x00')
    text = TEXTURE.sub('', text)
    text = ATLAS.sub('', text)
    text = HYPERLINK.sub(r'\1', text)
    text = COLOR_START.sub('', text)
    text = COLOR_END.sub('', text)
    text = NEWLINE.sub(' ', text)
    text = text.replace('\x00', '|')

    text = REPEATED_PUNCTUATION.sub(r'\1', text)
    text = WHITESPACE.sub(' ', text).strip()
    return text.strip(' -:|')


def parse_toc_content(content):
    """Parse .toc file content into manifest metadata.

    Args:
        content: str - File content, one "## Key: Value" directive per line

    Returns:
        ManifestMetadata - Parsed metadata; absent fields are "Unknown"
    """
    fields = {}
    for line in content.splitlines():
        stripped = line.strip().lstrip('\ufeff')
        if not stripped.startswith('##'):
            continue
        directive = stripped[2:].strip()
        key, sep, value = directive.partition(':')
        if not sep:
            continue

        field_name = TOC_KEYS.get(key.strip().lower())
        value = value.strip()
        if field_name and value and field_name not in fields:
            fields[field_name] = value

    if 'title' in fields:
        fields['title'] = sanitize_title(fields['title']) or UNKNOWN

    return ManifestMetadata(**fields)


def parse_toc_file(toc_path):
    """Read and parse a .toc file.

    Returns:
        ManifestMetadata - Parsed metadata, or all-"Unknown" metadata if unreadable
    """
    try:
        content = Path(toc_path).read_text(encoding='utf-8-sig', errors='replace')
    except OSError as e:
        logger.warning("Failed to read manifest %s: %s", toc_path, e)
        return ManifestMetadata()
    return parse_toc_content(content)


def is_manifest_file(path):
    path = Path(path)
    return path.is_file() and path.suffix.lower() == MANIFEST_EXTENSION


def find_toc_files(folder):
    """List the .toc files directly inside a folder, sorted by name."""
    folder = Path(folder)
    if not folder.is_dir():
        return []
    return sorted((p for p in folder.iterdir() if is_manifest_file(p)), key=lambda p: p.name.lower())
