"""
Unit tests for toc_parser module
"""
import shutil
import tempfile
import unittest
from pathlib import Path

from toc_parser import (UNKNOWN, ManifestMetadata, find_toc_files, parse_toc_content,
                        parse_toc_file, sanitize_title)


class TestSanitizeTitle(unittest.TestCase):

    def test_color_codes(self):
        self.assertEqual(sanitize_title('|cff00ff00Details!|r Damage Meter'), 'Details! Damage Meter')
        self.assertEqual(sanitize_title('|cnGREEN_FONT_COLOR:Green|r Addon'), 'Green Addon')

    def test_textures_atlases_and_links(self):
        self.assertEqual(sanitize_title('|TInterface\\Icons\\spell:16|t Bags'), 'Bags')
        self.assertEqual(sanitize_title('|A:atlas-name:16:16|a Bags'), 'Bags')
        self.assertEqual(sanitize_title('|Hitem:1234|hLinked|h Name'), 'Linked Name')

    def test_escaped_pipe_and_newline(self):
        self.assertEqual(sanitize_title('A || B'), 'A | B')
        self.assertEqual(sanitize_title('Line|nBreak'), 'Line Break')

    def test_collapses_whitespace_and_punctuation(self):
        self.assertEqual(sanitize_title('  My   Addon!!! --  '), 'My Addon!')

    def test_empty(self):
        self.assertEqual(sanitize_title(''), '')


class TestParseTocContent(unittest.TestCase):

    def test_known_fields(self):
        content = (
            '## Interface: 110000\n'
            '## Title: |cffffd200Bagnon|r\n'
            '##Version: 10.2.5\n'
            '## author: Jaliborc\n'
            '## Notes: Single window bags\n'
            '## X-Website: https://github.com/Jaliborc/Bagnon\n'
            'Bagnon.lua\n'
        )
        manifest = parse_toc_content(content)

        self.assertEqual(manifest.title, 'Bagnon')
        self.assertEqual(manifest.version, '10.2.5')
        self.assertEqual(manifest.author, 'Jaliborc')
        self.assertEqual(manifest.interface_version, '110000')
        self.assertEqual(manifest.website_url, 'https://github.com/Jaliborc/Bagnon')
        self.assertEqual(manifest.repository_url, UNKNOWN)

    def test_first_value_wins_and_bom_is_ignored(self):
        manifest = parse_toc_content('\ufeff## Title: First\n## Title: Second\n')
        self.assertEqual(manifest.title, 'First')

    def test_missing_fields_are_unknown(self):
        self.assertEqual(parse_toc_content('# comment only\n'), ManifestMetadata())

    def test_free_text_skips_unknown(self):
        manifest = ManifestMetadata(title='Addon', notes='See https://github.com/o/r')
        self.assertEqual(manifest.free_text(), 'See https://github.com/o/r Addon')


class TestTocFiles(unittest.TestCase):

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_parse_toc_file(self):
        toc = self.temp_dir / 'Addon.toc'
        toc.write_text('## Title: Addon\n## Version: 2.0\n', encoding='utf-8-sig')

        manifest = parse_toc_file(toc)

        self.assertEqual((manifest.title, manifest.version), ('Addon', '2.0'))

    def test_unreadable_file_gives_defaults(self):
        self.assertEqual(parse_toc_file(self.temp_dir / 'missing.toc'), ManifestMetadata())

    def test_find_toc_files_sorted(self):
        for name in ['b.toc', 'A.TOC', 'readme.md']:
            (self.temp_dir / name).write_text('')
        (self.temp_dir / 'sub.toc').mkdir()

        names = [p.name for p in find_toc_files(self.temp_dir)]

        self.assertEqual(names, ['A.TOC', 'b.toc'])


if __name__ == '__main__':
    unittest.main()
