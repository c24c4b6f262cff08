"""
Version Reconciler
Decides whether a newer version is available when the two version strings may
come from different discovery tiers (release tags, commit snapshots, branches)
"""

import re
from enum import Enum

UNKNOWN_VERSION = 'Unknown'

DATE_COMMIT_PATTERN = re.compile(r'^(\d{4}-\d{2}-\d{2})-([0-9a-fA-F]{7})$')
SEMANTIC_PATTERN = re.compile(r'^v?\d+\.\d+(\.\d+)?')

BRANCH_NAMES = {'main', 'master', 'develop', 'development', 'dev'}
BRANCH_SYNONYMS = [
    {'main', 'master'},
    {'develop', 'development', 'dev'},
]
BRANCH_LIKE_MAX_LENGTH = 20


class VersionClass(str, Enum):
    DATE_COMMIT = 'date-commit'
    SEMANTIC = 'semantic'
    BRANCH_LIKE = 'branch-like'
    OPAQUE = 'opaque'


def classify_version(version):
    """Classify a version identifier.

    Args:
        version: str - Version id from a release tag, commit snapshot or branch

    Returns:
        VersionClass - The single class the version belongs to
    """
    if DATE_COMMIT_PATTERN.match(version):
        return VersionClass.DATE_COMMIT
    if SEMANTIC_PATTERN.match(version):
        return VersionClass.SEMANTIC
    if version.lower() in BRANCH_NAMES or len(version) < BRANCH_LIKE_MAX_LENGTH:
        return VersionClass.BRANCH_LIKE
    return VersionClass.OPAQUE


def _is_missing(version):
    return version is None or not str(version).strip() or str(version).strip() == UNKNOWN_VERSION


def _strip_v(version):
    return version[1:] if version[:1] in ('v', 'V') else version


def _semantic_parts(version):
    """Split a semantic version into integer components.

    Non-numeric suffixes inside a component ("3-beta") keep their leading digits.
    """
    parts = []
    for component in _strip_v(version).split('.'):
        match = re.match(r'\d+', component)
        parts.append(int(match.group(0)) if match else 0)
    return parts


def compare_semantic(version1, version2):
    """Compare two semantic versions component-wise.

    Returns:
        int - -1 if version1 < version2, 0 if equal, 1 if version1 > version2
    """
    parts1 = _semantic_parts(version1)
    parts2 = _semantic_parts(version2)
    length = max(len(parts1), len(parts2))
    parts1 += [0] * (length - len(parts1))
    parts2 += [0] * (length - len(parts2))

    if parts1 < parts2:
        return -1
    if parts1 > parts2:
        return 1
    return 0


def _branches_equivalent(branch1, branch2):
    if branch1 == branch2:
        return True
    lower1, lower2 = branch1.lower(), branch2.lower()
    if lower1 == lower2:
        return True
    return any(lower1 in group and lower2 in group for group in BRANCH_SYNONYMS)


def needs_update(current, latest):
    """Decide whether `latest` should replace `current`.

    Version ids of different kinds are compared with rules that avoid
    flip-flopping between a release tag and a commit snapshot across checks.

    Args:
        current: Optional str - Installed version id
        latest: Optional str - Latest resolved version id

    Returns:
        bool - True if an update is available
    """
    if _is_missing(current):
        return not _is_missing(latest)
    if _is_missing(latest):
        return False

    current = current.strip()
    latest = latest.strip()
    current_class = classify_version(current)
    latest_class = classify_version(latest)

    DATE, SEM, BRANCH = VersionClass.DATE_COMMIT, VersionClass.SEMANTIC, VersionClass.BRANCH_LIKE

    if current_class == DATE and latest_class == DATE:
        current_date, current_hash = DATE_COMMIT_PATTERN.match(current).groups()
        latest_date, latest_hash = DATE_COMMIT_PATTERN.match(latest).groups()
        if current_date != latest_date:
            return current_date < latest_date
        return current_hash.lower() != latest_hash.lower()

    if current_class == DATE and latest_class == SEM:
        return True
    if current_class == SEM and latest_class == DATE:
        return False
    if current_class == BRANCH and latest_class == DATE:
        return True
    if current_class == DATE and latest_class == BRANCH:
        return False
    if current_class == SEM and latest_class == BRANCH:
        return False

    if current_class == BRANCH and latest_class == BRANCH:
        return not _branches_equivalent(current, latest)

    if current_class == SEM and latest_class == SEM:
        return compare_semantic(current, latest) < 0

    if current_class == BRANCH and latest_class == SEM:
        return True

    return _strip_v(current) != _strip_v(latest)
