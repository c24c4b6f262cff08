"""
Errors
Exception hierarchy shared by the resolver, installer and package manager
"""


class AddonManagerError(Exception):
    """Base exception for addon manager operations."""


class InvalidReference(AddonManagerError):
    """Raised when a URL is not a supported GitHub/GitLab repository URL."""


class TransportError(AddonManagerError):
    """Raised when a network call fails, times out or is cancelled."""


class RateLimited(TransportError):
    """Raised when the platform API answers 403 or 429."""


class NotFound(AddonManagerError):
    """Raised when an endpoint confirms the resource does not exist."""


class ResolutionExhausted(AddonManagerError):
    """Raised when every discovery tier failed for a repository."""

    def __init__(self, reference, failures=None):
        self.reference = reference
        self.failures = failures or []
        details = '; '.join(f'{tier}: {error}' for tier, error in self.failures)
        message = f'Could not find a downloadable release for {reference}'
        if details:
            message += f' ({details})'
        super().__init__(message)


class NoManifestFound(AddonManagerError):
    """Raised when an archive contains no folder with a .toc file."""


class DownloadFailed(AddonManagerError):
    """Raised when an archive download fails."""


class ExtractFailed(AddonManagerError):
    """Raised when an archive cannot be extracted."""


class FilesystemConflict(AddonManagerError):
    """Raised when a destination folder exists and cannot be replaced."""


class ConfigurationMissing(AddonManagerError):
    """Raised when the WoW installation path has not been configured."""


class PackageNotFound(AddonManagerError):
    """Raised when a managed package id is not in the registry."""


class PackageAlreadyManaged(AddonManagerError):
    """Raised when adding a repository that is already managed."""
