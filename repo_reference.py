"""
Repository Reference
Parses GitHub/GitLab repository URLs into normalized references
"""

from dataclasses import dataclass
from enum import Enum
from urllib.parse import quote, urlparse

from errors import InvalidReference


class Platform(str, Enum):
    GITHUB = 'github'
    GITLAB = 'gitlab'


PLATFORM_HOSTS = {
    'github.com': Platform.GITHUB,
    'gitlab.com': Platform.GITLAB,
}


@dataclass(frozen=True)
class RepositoryReference:
    """A hosted repository identified by platform, owner and name."""
    platform: Platform
    owner: str
    name: str

    @property
    def url(self):
        """Canonical web URL of the repository."""
        return f'https://{self.platform.value}.com/{self.owner}/{self.name}'

    @property
    def api_url(self):
        """REST API base URL for the repository."""
        if self.platform == Platform.GITHUB:
            return f'https://api.github.com/repos/{self.owner}/{self.name}'
        project_id = quote(f'{self.owner}/{self.name}', safe='')
        return f'https://gitlab.com/api/v4/projects/{project_id}'

    @property
    def package_id(self):
        """Stable identifier used for managed packages and scratch files."""
        return f'{self.platform.value}-{self.owner}-{self.name}'

    def __str__(self):
        return f'{self.owner}/{self.name}'


def parse_repository_url(url):
    """Parse a repository URL into a reference.

    Args:
        url: str - GitHub or GitLab repository URL; extra path segments and
            trailing slashes are ignored

    Returns:
        RepositoryReference - Normalized reference

    Raises:
        InvalidReference: If the host is unsupported or the path lacks owner/name
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidReference('Repository URL is empty')

    parsed = urlparse(url.strip())
    if parsed.scheme not in ('http', 'https'):
        raise InvalidReference(f'Invalid repository URL: {url}')

    hostname = (parsed.hostname or '').lower()
    if hostname.startswith('www.'):
        hostname = hostname[4:]

    platform = PLATFORM_HOSTS.get(hostname)
    if platform is None:
        raise InvalidReference(
            f'Unsupported repository URL: {url}. Only GitHub and GitLab are supported.'
        )

    path_parts = [part for part in parsed.path.split('/') if part]
    if len(path_parts) < 2:
        raise InvalidReference(f'Repository URL must include owner and name: {url}')

    owner, name = path_parts[0], path_parts[1]
    if name.endswith('.git'):
        name = name[:-4]
    if not name:
        raise InvalidReference(f'Repository URL must include owner and name: {url}')

    return RepositoryReference(platform=platform, owner=owner, name=name)


def is_valid_repository_url(url):
    """Check whether a URL parses as a supported repository reference."""
    try:
        parse_repository_url(url)
        return True
    except InvalidReference:
        return False
