"""
Workers
QThread workers that run package manager actions off the UI thread
"""

import threading

from PyQt6.QtCore import QThread, pyqtSignal

from errors import AddonManagerError


class InstallWorker(QThread):
    """Thread worker for installing an addon from a repository URL.

    Signals:
        finished(success, message) - Installation complete
        progress(message) - Installation progress update
    """
    finished = pyqtSignal(bool, str)
    progress = pyqtSignal(str)

    def __init__(self, package_manager, url, custom_folder_name=None, asset_name=None, priority=None):
        """Initialize installation worker.

        Args:
            package_manager: PackageManager - Package manager instance
            url: str - Repository URL
            custom_folder_name: Optional str - Folder name for single-folder addons
            asset_name: Optional str - Release asset to prefer
            priority: Optional DownloadPriority - Release or branch-head installs
        """
        super().__init__()
        self.package_manager = package_manager
        self.url = url
        self.custom_folder_name = custom_folder_name
        self.asset_name = asset_name
        self.priority = priority
        self._cancel_event = threading.Event()

    def cancel(self):
        """Request cancellation; outstanding downloads are abandoned."""
        self._cancel_event.set()

    def run(self):
        try:
            self.progress.emit(f"Resolving latest release of {self.url}...")
            kwargs = {'priority': self.priority} if self.priority else {}
            package = self.package_manager.add_addon(
                self.url,
                custom_folder_name=self.custom_folder_name,
                asset_name=self.asset_name,
                cancel_event=self._cancel_event,
                **kwargs
            )
            self.finished.emit(True, f'{package.display_name} {package.current_version_id} installed successfully')
        except AddonManagerError as e:
            self.finished.emit(False, str(e))


class UpdateWorker(QThread):
    """Worker thread for a single addon update"""
    finished = pyqtSignal(bool, str, bool)  # success, message, already_updated
    progress = pyqtSignal(str)

    def __init__(self, package_manager, package_id, force=False):
        super().__init__()
        self.package_manager = package_manager
        self.package_id = package_id
        self.force = force
        self._cancel_event = threading.Event()

    def cancel(self):
        self._cancel_event.set()

    def run(self):
        try:
            self.progress.emit(f"Updating {self.package_id}...")
            result = self.package_manager.update_addon(
                self.package_id, force=self.force, cancel_event=self._cancel_event
            )
            self.finished.emit(True, result['message'], result['already_updated'])
        except AddonManagerError as e:
            self.finished.emit(False, str(e), False)


class CheckUpdatesWorker(QThread):
    """Worker thread resolving the latest version of every managed addon"""
    finished = pyqtSignal(object)
    progress = pyqtSignal(str)

    def __init__(self, package_manager, refresh=False):
        super().__init__()
        self.package_manager = package_manager
        self.refresh = refresh
        self._cancel_event = threading.Event()

    def cancel(self):
        self._cancel_event.set()

    def run(self):
        self.progress.emit("Checking for updates...")
        results = self.package_manager.check_for_updates(refresh=self.refresh, cancel_event=self._cancel_event)
        self.finished.emit(results)


class BatchUpdateWorker(QThread):
    """Worker thread for batch update"""
    finished = pyqtSignal(int, int, int)  # updated, failed, skipped
    progress = pyqtSignal(str, int, int)
    log = pyqtSignal(str)

    def __init__(self, package_manager):
        """Initialize batch update worker.

        Args:
            package_manager: PackageManager - Package manager instance
        """
        super().__init__()
        self.package_manager = package_manager
        self._cancel_event = threading.Event()

    def cancel(self):
        """Request cancellation of batch update process."""
        self._cancel_event.set()

    def _report(self, package, index, total):
        self.progress.emit(f"Updating {package.display_name}...", index, total)
        self.log.emit(f"[{index + 1}/{total}] Updating {package.display_name}...")

    def run(self):
        """Update every addon flagged by the last check.

        Emits: progress(message, index, total), log(message), finished(updated, failed, skipped)
        """
        results = self.package_manager.update_all(cancel_event=self._cancel_event, progress=self._report)

        for package_id in results['updated']:
            self.log.emit(f"{package_id} updated successfully")
        for package_id in results['skipped']:
            self.log.emit(f"{package_id} already up-to-date")
        for package_id, error in results['failed'].items():
            self.log.emit(f"{package_id} failed: {error}")
        if results['cancelled']:
            self.log.emit("Batch update cancelled by user")

        self.finished.emit(len(results['updated']), len(results['failed']), len(results['skipped']))


class ScanWorker(QThread):
    finished = pyqtSignal(object)
    error = pyqtSignal(str)
    progress = pyqtSignal(str)

    def __init__(self, package_manager):
        """Initialize scan worker.

        Args:
            package_manager: PackageManager - Package manager instance
        """
        super().__init__()
        self.package_manager = package_manager

    def run(self):
        """Scan the AddOns directory for unmanaged addons.

        Emits: finished(entries) or error(message)
        """
        try:
            self.progress.emit("Scanning for existing addons...")
            self.finished.emit(self.package_manager.scan_existing())
        except AddonManagerError as e:
            self.error.emit(str(e))


class CatalogInstallWorker(QThread):
    """Worker thread installing a catalog addon and its dependencies"""
    finished = pyqtSignal(object)
    progress = pyqtSignal(str, int, int)
    error = pyqtSignal(str)

    def __init__(self, package_manager, catalog_id):
        super().__init__()
        self.package_manager = package_manager
        self.catalog_id = catalog_id
        self._cancel_event = threading.Event()

    def cancel(self):
        self._cancel_event.set()

    def _report(self, entry, index, total):
        self.progress.emit(f"Installing {entry.name}...", index, total)

    def run(self):
        try:
            results = self.package_manager.install_with_dependencies(
                self.catalog_id, cancel_event=self._cancel_event, progress=self._report
            )
            self.finished.emit(results)
        except AddonManagerError as e:
            self.error.emit(str(e))
