"""
Unit tests for folder_grouper module
"""
import unittest
from datetime import datetime

from folder_grouper import (RELATION_RULES, RelatedFolderGrouper, exact_name,
                            separator_suffix, shared_component_prefix, shared_words)
from installation_scanner import ExistingEntry
from repo_reference import Platform, RepositoryReference
from toc_parser import ManifestMetadata


def entry(folder_name, title=None, **kwargs):
    return ExistingEntry(folder_name, ManifestMetadata(title=title or folder_name), **kwargs)


class TestRelationRules(unittest.TestCase):

    def test_rule_order(self):
        self.assertEqual(RELATION_RULES, [exact_name, separator_suffix, shared_component_prefix, shared_words])

    def test_exact_name(self):
        self.assertTrue(exact_name('Bagnon', 'bagnon'))
        self.assertFalse(exact_name('Bagnon', 'Bagnon_Config'))

    def test_separator_suffix(self):
        self.assertTrue(separator_suffix('Foo', 'Foo_Options'))
        self.assertTrue(separator_suffix('Foo-Merchant', 'Foo'))
        self.assertFalse(separator_suffix('Foo', 'Foo_Classic'))
        self.assertFalse(separator_suffix('Foo', 'Foobar'))

    def test_shared_component_prefix(self):
        self.assertTrue(shared_component_prefix('WeakAurasCore', 'WeakAurasOptions'))
        self.assertTrue(shared_component_prefix('Bagnon', 'BagnonConfig'))
        self.assertFalse(shared_component_prefix('WeakAurasCore', 'WeakAurasClassic'))
        self.assertFalse(shared_component_prefix('DBMCore', 'DBMOptions'))
        self.assertFalse(shared_component_prefix('Plater', 'PlaterNameplates'))

    def test_shared_words(self):
        self.assertTrue(shared_words('Titan_Panel_Bag', 'Titan_Panel_Clock'))
        self.assertFalse(shared_words('Addon_Classic', 'Addon_WotLK'))
        self.assertFalse(shared_words('Bagnon', 'Bagnon_Config'))


class TestRelatedFolderGrouper(unittest.TestCase):

    def setUp(self):
        self.grouper = RelatedFolderGrouper()

    def test_groups_components(self):
        reference = RepositoryReference(Platform.GITHUB, 'owner', 'Foo')
        entries = [
            entry('Foo_Options', last_modified=datetime(2024, 5, 1)),
            entry('Foo', title='Foo Addon', last_modified=datetime(2024, 1, 1)),
            entry('Foo-Merchant', suggested_references=[reference]),
        ]

        result = self.grouper.group(entries)

        self.assertEqual(len(result), 1)
        group = result[0]
        self.assertTrue(group.is_grouped)
        self.assertEqual(group.folder_name, 'Foo')
        self.assertEqual(group.title, 'Foo Addon')
        self.assertEqual(group.related_folders[0], 'Foo')
        self.assertCountEqual(group.related_folders, ['Foo', 'Foo_Options', 'Foo-Merchant'])
        self.assertEqual(group.suggested_references, [reference])
        self.assertEqual(group.last_modified, datetime(2024, 5, 1))

    def test_variants_are_not_grouped(self):
        result = self.grouper.group([entry('Addon_Classic'), entry('Addon_WotLK')])

        self.assertEqual(len(result), 2)
        self.assertFalse(any(e.is_grouped for e in result))

    def test_sorted_by_title(self):
        result = self.grouper.group([entry('zeta', title='Zeta'), entry('Alpha'), entry('beta', title='beta')])

        self.assertEqual([e.title for e in result], ['Alpha', 'beta', 'Zeta'])

    def test_custom_rules(self):
        grouper = RelatedFolderGrouper(rules=[exact_name])

        result = grouper.group([entry('Foo'), entry('Foo_Options')])

        self.assertEqual(len(result), 2)

    def test_input_entries_are_not_modified(self):
        base = entry('Foo')

        self.grouper.group([base, entry('Foo_Config')])

        self.assertFalse(base.is_grouped)
        self.assertEqual(base.related_folders, ['Foo'])


if __name__ == '__main__':
    unittest.main()
