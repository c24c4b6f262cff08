"""
Unit tests for workers module (run() is called directly, without an event loop)
"""
import unittest
from unittest.mock import MagicMock

from PyQt6.QtCore import QCoreApplication

from addon_catalog import CatalogEntry
from errors import ConfigurationMissing, PackageNotFound, ResolutionExhausted
from workers import (BatchUpdateWorker, CatalogInstallWorker, CheckUpdatesWorker, InstallWorker, ScanWorker,
                     UpdateWorker)


class WorkerTestCase(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.app = QCoreApplication.instance() or QCoreApplication([])

    def setUp(self):
        self.package_manager = MagicMock()
        self.emitted = []

    def record(self, *args):
        self.emitted.append(args)


class TestInstallWorker(WorkerTestCase):

    def test_success(self):
        package = MagicMock(display_name='Foo', current_version_id='v1.0')
        self.package_manager.add_addon.return_value = package
        worker = InstallWorker(self.package_manager, 'https://github.com/owner/Foo', custom_folder_name='MyFoo')
        worker.finished.connect(self.record)

        worker.run()

        self.assertEqual(self.emitted, [(True, 'Foo v1.0 installed successfully')])
        kwargs = self.package_manager.add_addon.call_args.kwargs
        self.assertEqual(kwargs['custom_folder_name'], 'MyFoo')
        self.assertNotIn('priority', kwargs)

    def test_failure(self):
        self.package_manager.add_addon.side_effect = ResolutionExhausted('owner/Foo')
        worker = InstallWorker(self.package_manager, 'https://github.com/owner/Foo')
        worker.finished.connect(self.record)

        worker.run()

        success, message = self.emitted[0]
        self.assertFalse(success)
        self.assertIn('owner/Foo', message)

    def test_cancel_sets_event(self):
        worker = InstallWorker(self.package_manager, 'https://github.com/owner/Foo')
        worker.cancel()

        worker.run()

        self.assertTrue(self.package_manager.add_addon.call_args.kwargs['cancel_event'].is_set())


class TestUpdateWorker(WorkerTestCase):

    def test_already_updated(self):
        self.package_manager.update_addon.return_value = {
            'package': MagicMock(), 'already_updated': True, 'message': 'Foo is already up to date'
        }
        worker = UpdateWorker(self.package_manager, 'github-owner-Foo')
        worker.finished.connect(self.record)

        worker.run()

        self.assertEqual(self.emitted, [(True, 'Foo is already up to date', True)])

    def test_failure(self):
        self.package_manager.update_addon.side_effect = PackageNotFound('No managed addon')
        worker = UpdateWorker(self.package_manager, 'missing')
        worker.finished.connect(self.record)

        worker.run()

        self.assertEqual(self.emitted, [(False, 'No managed addon', False)])


class TestCheckUpdatesWorker(WorkerTestCase):

    def test_emits_results(self):
        results = [{'id': 'github-owner-Foo', 'needs_update': True, 'error': None}]
        self.package_manager.check_for_updates.return_value = results
        worker = CheckUpdatesWorker(self.package_manager, refresh=True)
        worker.finished.connect(self.record)

        worker.run()

        self.assertEqual(self.emitted, [(results,)])
        self.assertTrue(self.package_manager.check_for_updates.call_args.kwargs['refresh'])


class TestBatchUpdateWorker(WorkerTestCase):

    def test_counts_and_log(self):
        def update_all(cancel_event=None, progress=None):
            progress(MagicMock(display_name='Foo'), 0, 2)
            progress(MagicMock(display_name='Bar'), 1, 2)
            return {'updated': ['foo'], 'skipped': [], 'failed': {'bar': 'Download failed'}, 'cancelled': False}

        self.package_manager.update_all.side_effect = update_all
        worker = BatchUpdateWorker(self.package_manager)
        progress, log = [], []
        worker.finished.connect(self.record)
        worker.progress.connect(lambda message, index, total: progress.append((message, index, total)))
        worker.log.connect(log.append)

        worker.run()

        self.assertEqual(self.emitted, [(1, 1, 0)])
        self.assertEqual(progress, [('Updating Foo...', 0, 2), ('Updating Bar...', 1, 2)])
        self.assertIn('bar failed: Download failed', log)

    def test_cancel(self):
        self.package_manager.update_all.return_value = {
            'updated': [], 'skipped': [], 'failed': {}, 'cancelled': True
        }
        worker = BatchUpdateWorker(self.package_manager)
        log = []
        worker.log.connect(log.append)

        worker.cancel()
        worker.run()

        self.assertTrue(self.package_manager.update_all.call_args.kwargs['cancel_event'].is_set())
        self.assertIn('Batch update cancelled by user', log)


class TestScanWorker(WorkerTestCase):

    def test_emits_entries(self):
        self.package_manager.scan_existing.return_value = ['entry']
        worker = ScanWorker(self.package_manager)
        worker.finished.connect(self.record)

        worker.run()

        self.assertEqual(self.emitted, [(['entry'],)])

    def test_emits_error(self):
        self.package_manager.scan_existing.side_effect = ConfigurationMissing('WoW installation path is not set')
        worker = ScanWorker(self.package_manager)
        errors = []
        worker.error.connect(errors.append)

        worker.run()

        self.assertEqual(errors, ['WoW installation path is not set'])


class TestCatalogInstallWorker(WorkerTestCase):

    def test_reports_progress_and_results(self):
        def install(catalog_id, cancel_event=None, progress=None):
            progress(CatalogEntry('core', 'Core', 'https://github.com/owner/Core', 'Core'), 0, 1)
            return {'installed': [catalog_id], 'skipped': [], 'failed': {}, 'unknown': [], 'cancelled': False}

        self.package_manager.install_with_dependencies.side_effect = install
        worker = CatalogInstallWorker(self.package_manager, 'core')
        progress = []
        worker.finished.connect(self.record)
        worker.progress.connect(lambda message, index, total: progress.append((message, index, total)))

        worker.run()

        self.assertEqual(self.emitted[0][0]['installed'], ['core'])
        self.assertEqual(progress, [('Installing Core...', 0, 1)])

    def test_unknown_id_emits_error(self):
        self.package_manager.install_with_dependencies.side_effect = PackageNotFound('No catalog addon with id "x"')
        worker = CatalogInstallWorker(self.package_manager, 'x')
        errors = []
        worker.error.connect(errors.append)

        worker.run()

        self.assertEqual(errors, ['No catalog addon with id "x"'])


if __name__ == '__main__':
    unittest.main()
