"""
Folder Grouper
Merges AddOns folders that are components of one addon (Foo, Foo_Options,
Foo-Merchant) into a single scan entry
"""

import re
from dataclasses import replace

SEPARATORS = ('_', '-', ' ')
MIN_SHARED_PREFIX = 4
MIN_MEANINGFUL_WORD = 3

# Game client versions: Foo_Classic and Foo_WotLK are alternatives, not parts
VARIANT_TOKENS = {
    'classic', 'vanilla', 'era', 'sod', 'hardcore', 'tbc', 'bcc', 'wrath', 'wotlk',
    'wotlkc', 'cata', 'cataclysm', 'mop', 'mists', 'retail', 'mainline', 'legion',
    'bfa', 'sl', 'df', 'tww', 'ptr', 'beta',
}

COMPONENT_WORDS = {
    'core', 'options', 'option', 'config', 'configurator', 'settings', 'locale',
    'locales', 'merchant', 'data', 'db', 'media', 'sounds', 'textures', 'fonts',
    'plugins', 'plugin', 'modules', 'module', 'extras', 'skins', 'bank', 'mail',
    'auction', 'tooltip', 'tooltips', 'gui', 'ui', 'libs', 'lib',
}

WORD_SPLIT = re.compile(r'[^a-z0-9]+')


def _words(name):
    return [w for w in WORD_SPLIT.split(name.lower()) if w]


def _is_variant(suffix):
    return any(word in VARIANT_TOKENS for word in _words(suffix))


def exact_name(a, b):
    return a.lower() == b.lower()


def separator_suffix(a, b):
    """Foo and Foo_Options: one name is the other plus a separator and a suffix."""
    shorter, longer = sorted((a, b), key=len)
    shorter_lower, longer_lower = shorter.lower(), longer.lower()
    for sep in SEPARATORS:
        prefix = shorter_lower + sep
        if longer_lower.startswith(prefix) and len(longer_lower) > len(prefix):
            return not _is_variant(longer[len(prefix):])
    return False


def shared_component_prefix(a, b):
    """FooCore and FooOptions: a shared stem followed by component words."""
    a_lower, b_lower = a.lower(), b.lower()
    length = 0
    for ca, cb in zip(a_lower, b_lower):
        if ca != cb:
            break
        length += 1
    if length < MIN_SHARED_PREFIX:
        return False

    suffixes = [s.strip('_- ') for s in (a_lower[length:], b_lower[length:])]
    if any(_is_variant(s) for s in suffixes):
        return False

    non_empty = [s for s in suffixes if s]
    if not non_empty:
        return False
    return all(s in COMPONENT_WORDS for s in non_empty)


def shared_words(a, b):
    """Deadly Boss Mods and Deadly Boss Mods Core: most of the words in common."""
    words_a, words_b = _words(a), _words(b)
    if len(words_a) < 2 or len(words_b) < 2:
        return False

    shared = set(words_a) & set(words_b)
    different = set(words_a) ^ set(words_b)
    if any(word in VARIANT_TOKENS for word in different):
        return False

    meaningful = [w for w in shared if len(w) >= MIN_MEANINGFUL_WORD]
    if len(meaningful) >= 2:
        return True
    return len(shared) >= max(len(set(words_a)), len(set(words_b))) - 1 and len(shared) > 0


# Evaluated in order; the first matching rule relates two names
RELATION_RULES = [
    exact_name,
    separator_suffix,
    shared_component_prefix,
    shared_words,
]


class RelatedFolderGrouper:
    def __init__(self, rules=None):
        """Initialize grouper.

        Args:
            rules: Optional list - Relation rules evaluated in order (defaults to RELATION_RULES)
        """
        self.rules = list(rules or RELATION_RULES)

    def are_related(self, a, b):
        """Check whether two folder names belong to the same addon."""
        return any(rule(a, b) for rule in self.rules)

    def _merge(self, entries):
        base = entries[0]
        suggestions = []
        for entry in entries:
            for reference in entry.suggested_references:
                if reference not in suggestions:
                    suggestions.append(reference)
        modified = [e.last_modified for e in entries if e.last_modified is not None]
        return replace(
            base,
            related_folders=[e.folder_name for e in entries],
            is_grouped=True,
            suggested_references=suggestions,
            last_modified=max(modified) if modified else None
        )

    def group(self, entries):
        """Merge multi-folder addons into single entries.

        Shorter names are treated as the base addon; every ungrouped entry related
        to a base joins its group.

        Args:
            entries: list - ExistingEntry items from InstallationScanner.scan

        Returns:
            list - Entries sorted by display title
        """
        ordered = sorted(entries, key=lambda e: (len(e.folder_name), e.folder_name.lower()))
        grouped = set()
        result = []

        for index, base in enumerate(ordered):
            if index in grouped:
                continue
            grouped.add(index)

            members = [base]
            for other_index in range(index + 1, len(ordered)):
                if other_index in grouped:
                    continue
                other = ordered[other_index]
                if self.are_related(base.folder_name, other.folder_name):
                    members.append(other)
                    grouped.add(other_index)

            result.append(self._merge(members) if len(members) > 1 else base)

        return sorted(result, key=lambda e: e.title.lower())
