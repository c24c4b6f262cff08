"""
Unit tests for archive_materializer module
"""
import shutil
import tempfile
import unittest
from pathlib import Path

from archive_materializer import ArchiveMaterializer, scratch_names
from errors import DownloadFailed, NoManifestFound
from fakes import FakeTransport, toc_text
from filesystem import LocalFileSystem
from release_resolver import DiscoveryTier, ReleaseArtifact
from repo_reference import Platform, RepositoryReference

ARCHIVE_URL = 'https://example.com/Addon.zip'


class TestArchiveMaterializer(unittest.TestCase):

    def setUp(self):
        self.root = Path(tempfile.mkdtemp())
        self.addons_dir = self.root / 'AddOns'
        self.temp_dir = self.root / 'scratch'
        self.transport = FakeTransport()
        self.materializer = ArchiveMaterializer(self.transport, LocalFileSystem(), self.addons_dir, self.temp_dir)
        self.reference = RepositoryReference(Platform.GITHUB, 'owner', 'Foo')
        self.artifact = ReleaseArtifact('v1.0', ARCHIVE_URL, DiscoveryTier.RELEASE_ASSET)

    def tearDown(self):
        shutil.rmtree(self.root)

    def assert_no_scratch_left(self):
        self.assertEqual(list(self.temp_dir.iterdir()), [])

    def test_scratch_names(self):
        archive, folder = scratch_names(self.reference, 'release/1.0')
        self.assertEqual(archive, 'github-owner-Foo-release_1.0.zip')
        self.assertEqual(folder, 'extract-github-owner-Foo')

    def test_single_folder_install(self):
        self.transport.add_archive(ARCHIVE_URL, {
            'Foo-main/Foo.toc': toc_text('|cff00ff00Foo|r Bars', '1.0'),
            'Foo-main/Foo.lua': 'print("hi")',
        })

        package = self.materializer.install(self.reference, self.artifact)

        self.assertEqual(package.installed_folder_names, ['Foo'])
        self.assertEqual(package.display_name, 'Foo Bars')
        self.assertEqual(package.id, 'github-owner-Foo')
        self.assertEqual(package.current_version_id, 'v1.0')
        self.assertEqual(package.discovery_tier, 'release-asset')
        self.assertTrue((self.addons_dir / 'Foo' / 'Foo.lua').is_file())
        self.assert_no_scratch_left()

    def test_reinstall_replaces_folder_contents(self):
        self.transport.add_archive(ARCHIVE_URL, {'Foo/Foo.toc': toc_text('Foo')})
        stale = self.addons_dir / 'Foo' / 'old.lua'
        stale.parent.mkdir(parents=True)
        stale.write_text('old')

        first = self.materializer.install(self.reference, self.artifact)
        second = self.materializer.install(self.reference, self.artifact)

        self.assertEqual(first.installed_folder_names, second.installed_folder_names)
        self.assertFalse(stale.exists())
        self.assertEqual(sorted(p.name for p in (self.addons_dir / 'Foo').iterdir()), ['Foo.toc'])
        self.assert_no_scratch_left()

    def test_multi_folder_install_promotes_primary(self):
        self.transport.add_archive(ARCHIVE_URL, {
            'Foo-1.0/Bar/Bar.toc': toc_text('Bar'),
            'Foo-1.0/Zed/Zed.toc': toc_text('Zed', X_Repository='https://github.com/owner/Foo'),
            'Foo-1.0/__MACOSX/Bar/Bar.toc': '',
            'Foo-1.0/docs/docs.toc': '',
        })

        package = self.materializer.install(self.reference, self.artifact)

        self.assertEqual(package.installed_folder_names, ['Zed', 'Bar'])
        self.assertEqual(package.display_name, 'Zed')
        self.assertEqual(sorted(p.name for p in self.addons_dir.iterdir()), ['Bar', 'Zed'])

    def test_custom_folder_name_for_single_folder(self):
        self.transport.add_archive(ARCHIVE_URL, {'Foo-main/Foo.toc': toc_text('Foo')})

        package = self.materializer.install(self.reference, self.artifact, custom_folder_name='MyFoo',
                                            asset_name_preference='Foo.zip')

        self.assertEqual(package.installed_folder_names, ['MyFoo'])
        self.assertEqual(package.custom_folder_name, 'MyFoo')
        self.assertEqual(package.asset_name_preference, 'Foo.zip')
        self.assertTrue((self.addons_dir / 'MyFoo' / 'Foo.toc').is_file())

    def test_custom_folder_name_ignored_for_multi_folder(self):
        self.transport.add_archive(ARCHIVE_URL, {'A/A.toc': '', 'B/B.toc': ''})

        package = self.materializer.install(self.reference, self.artifact, custom_folder_name='MyFoo')

        self.assertCountEqual(package.installed_folder_names, ['A', 'B'])

    def test_no_manifest(self):
        self.transport.add_archive(ARCHIVE_URL, {'Foo-main/README.md': '# Foo'})

        with self.assertRaises(NoManifestFound):
            self.materializer.install(self.reference, self.artifact)

        self.assert_no_scratch_left()
        self.assertEqual(list(self.addons_dir.iterdir()), [])

    def test_download_failure(self):
        with self.assertRaises(DownloadFailed):
            self.materializer.install(self.reference, self.artifact)

        self.assert_no_scratch_left()

    def test_stale_extraction_folder_is_replaced(self):
        leftover = self.temp_dir / 'extract-github-owner-Foo' / 'Old' / 'Old.toc'
        leftover.parent.mkdir(parents=True)
        leftover.write_text('')
        self.transport.add_archive(ARCHIVE_URL, {'Foo/Foo.toc': ''})

        package = self.materializer.install(self.reference, self.artifact)

        self.assertEqual(package.installed_folder_names, ['Foo'])


if __name__ == '__main__':
    unittest.main()
