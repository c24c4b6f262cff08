"""
Release Resolver
Finds the latest installable archive for a GitHub/GitLab repository by walking
an ordered list of discovery strategies (release asset, tag, branch head, web page)
"""

import logging
import re
import threading
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from urllib.parse import quote, unquote

from errors import NotFound, RateLimited, ResolutionExhausted, TransportError
from http_transport import METADATA_TIMEOUT, PAGE_TIMEOUT
from repo_reference import Platform

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 600
ARCHIVE_EXTENSION = '.zip'
PLACEHOLDER_VERSION = 'latest'


class DiscoveryTier(str, Enum):
    RELEASE_ASSET = 'release-asset'
    RELEASE_ARCHIVE_FALLBACK = 'release-archive-fallback'
    TAG = 'tag'
    BRANCH_HEAD = 'branch-head'
    WEB_SCRAPE = 'web-scrape'


class DownloadPriority(str, Enum):
    PREFER_RELEASES = 'prefer-releases'
    PREFER_CODE = 'prefer-code'


@dataclass(frozen=True)
class ReleaseArtifact:
    version_id: str
    download_url: str
    discovery_tier: DiscoveryTier
    published_at: str = None
    size_bytes: int = None
    branch: str = None
    commit: str = None

    def to_dict(self):
        data = asdict(self)
        data['discovery_tier'] = self.discovery_tier.value
        return data

    @classmethod
    def from_dict(cls, data):
        data = dict(data)
        data['discovery_tier'] = DiscoveryTier(data['discovery_tier'])
        return cls(**data)


class ResolverContext:
    """Transport and cache shared by every resolution in the process.

    The cache is safe for concurrent use; entries expire on read.
    """

    def __init__(self, transport, ttl=CACHE_TTL_SECONDS, clock=time.monotonic):
        self.transport = transport
        self.ttl = ttl
        self.clock = clock
        self._cache = {}
        self._lock = threading.Lock()

    def cache_get(self, key):
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            artifact, expires_at = entry
            if self.clock() > expires_at:
                del self._cache[key]
                return None
            return artifact

    def cache_set(self, key, artifact):
        with self._lock:
            self._cache[key] = (artifact, self.clock() + self.ttl)

    def clear_cache(self):
        with self._lock:
            self._cache.clear()


def _commit_date(timestamp):
    """Convert an ISO-8601 commit timestamp to a UTC YYYY-MM-DD date."""
    parsed = datetime.fromisoformat(timestamp.replace('Z', '+00:00'))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.strftime('%Y-%m-%d')


def github_archive_url(reference, ref, kind=None):
    """Build a codeload.github.com zip URL for a tag, branch or bare ref."""
    base = f'https://codeload.github.com/{reference.owner}/{reference.name}/zip'
    if kind == 'tag':
        return f'{base}/refs/tags/{quote(ref)}'
    if kind == 'branch':
        return f'{base}/refs/heads/{quote(ref)}'
    return f'{base}/{quote(ref)}'


def gitlab_archive_url(reference, ref):
    """Build a gitlab.com zip URL for a tag or branch."""
    safe_ref = quote(ref)
    return (f'https://gitlab.com/{reference.owner}/{reference.name}/-/archive/'
            f'{safe_ref}/{reference.name}-{safe_ref.replace("/", "-")}.zip')


class DiscoveryStrategy:
    """One tier of the fallback chain.

    `attempt` returns a ReleaseArtifact or raises NotFound (confirmed absence)
    or TransportError/RateLimited (the platform could not be asked).
    """
    name = 'strategy'

    def __init__(self, context):
        self.context = context

    def attempt(self, reference, asset_name_preference=None, cancel_event=None):
        if reference.platform == Platform.GITHUB:
            return self._attempt_github(reference, asset_name_preference, cancel_event)
        return self._attempt_gitlab(reference, asset_name_preference, cancel_event)

    def _attempt_github(self, reference, asset_name_preference, cancel_event):
        raise NotImplementedError

    def _attempt_gitlab(self, reference, asset_name_preference, cancel_event):
        raise NotImplementedError

    def _get(self, url, cancel_event, timeout=METADATA_TIMEOUT):
        response = self.context.transport.get(url, timeout=timeout, cancel_event=cancel_event)
        if response.status in (403, 429):
            raise RateLimited(f'HTTP {response.status} from {url}')
        if response.status == 404:
            raise NotFound(f'HTTP 404 from {url}')
        if not response.ok:
            raise TransportError(f'HTTP {response.status} from {url}')
        return response

    def _get_json(self, url, cancel_event):
        return self._get(url, cancel_event).json()


class ReleaseAssetStrategy(DiscoveryStrategy):
    """Latest release: preferred asset, first zip asset, or the release's source archive."""
    name = 'release'

    def _pick_asset(self, assets, asset_name_preference, name_key='name'):
        if asset_name_preference:
            wanted = asset_name_preference.lower()
            for asset in assets:
                if (asset.get(name_key) or '').lower() == wanted:
                    return asset
        for asset in assets:
            if (asset.get(name_key) or '').lower().endswith(ARCHIVE_EXTENSION):
                return asset
        return None

    def _attempt_github(self, reference, asset_name_preference, cancel_event):
        release = self._get_json(f'{reference.api_url}/releases/latest', cancel_event)
        tag = release.get('tag_name') or release.get('name')
        if not tag:
            raise NotFound(f'Latest release of {reference} has no tag')

        asset = self._pick_asset(release.get('assets') or [], asset_name_preference)
        if asset:
            return ReleaseArtifact(
                version_id=tag,
                download_url=asset['browser_download_url'],
                discovery_tier=DiscoveryTier.RELEASE_ASSET,
                published_at=release.get('published_at'),
                size_bytes=asset.get('size')
            )

        if release.get('zipball_url'):
            return ReleaseArtifact(
                version_id=tag,
                download_url=github_archive_url(reference, tag),
                discovery_tier=DiscoveryTier.RELEASE_ARCHIVE_FALLBACK,
                published_at=release.get('published_at')
            )

        raise NotFound(f'Latest release of {reference} has no zip asset')

    def _attempt_gitlab(self, reference, asset_name_preference, cancel_event):
        releases = self._get_json(f'{reference.api_url}/releases', cancel_event)
        if not releases:
            raise NotFound(f'{reference} has no releases')

        release = releases[0]
        tag = release.get('tag_name')
        if not tag:
            raise NotFound(f'Latest release of {reference} has no tag')

        links = (release.get('assets') or {}).get('links') or []
        link = self._pick_asset(links, asset_name_preference)
        if link is None:
            link = next((l for l in links if l.get('link_type') == 'package'), None)
        if link:
            return ReleaseArtifact(
                version_id=tag,
                download_url=link.get('direct_asset_url') or link['url'],
                discovery_tier=DiscoveryTier.RELEASE_ASSET,
                published_at=release.get('released_at') or release.get('created_at')
            )

        return ReleaseArtifact(
            version_id=tag,
            download_url=gitlab_archive_url(reference, tag),
            discovery_tier=DiscoveryTier.RELEASE_ARCHIVE_FALLBACK,
            published_at=release.get('released_at') or release.get('created_at')
        )


class TagStrategy(DiscoveryStrategy):
    """Most recent tag, downloaded as a source archive."""
    name = 'tag'

    def _attempt_github(self, reference, asset_name_preference, cancel_event):
        tags = self._get_json(f'{reference.api_url}/tags?per_page=1', cancel_event)
        if not tags:
            raise NotFound(f'{reference} has no tags')
        tag = tags[0]['name']
        return ReleaseArtifact(
            version_id=tag,
            download_url=github_archive_url(reference, tag, kind='tag'),
            discovery_tier=DiscoveryTier.TAG,
            commit=(tags[0].get('commit') or {}).get('sha')
        )

    def _attempt_gitlab(self, reference, asset_name_preference, cancel_event):
        tags = self._get_json(f'{reference.api_url}/repository/tags', cancel_event)
        if not tags:
            raise NotFound(f'{reference} has no tags')
        tag = tags[0]['name']
        commit = tags[0].get('commit') or {}
        return ReleaseArtifact(
            version_id=tag,
            download_url=gitlab_archive_url(reference, tag),
            discovery_tier=DiscoveryTier.TAG,
            published_at=commit.get('created_at'),
            commit=commit.get('id')
        )


class BranchHeadStrategy(DiscoveryStrategy):
    """Head commit of the default branch, versioned as {date}-{short sha}."""
    name = 'branch'

    def _artifact(self, branch, sha, timestamp, download_url):
        return ReleaseArtifact(
            version_id=f'{_commit_date(timestamp)}-{sha[:7].lower()}',
            download_url=download_url,
            discovery_tier=DiscoveryTier.BRANCH_HEAD,
            published_at=timestamp,
            branch=branch,
            commit=sha
        )

    def _attempt_github(self, reference, asset_name_preference, cancel_event):
        repo = self._get_json(reference.api_url, cancel_event)
        branch = repo.get('default_branch') or 'main'
        commit = self._get_json(f'{reference.api_url}/commits/{quote(branch, safe="")}', cancel_event)
        details = commit.get('commit') or {}
        author = details.get('author') or details.get('committer') or {}
        return self._artifact(
            branch, commit['sha'], author['date'],
            github_archive_url(reference, branch, kind='branch')
        )

    def _attempt_gitlab(self, reference, asset_name_preference, cancel_event):
        project = self._get_json(reference.api_url, cancel_event)
        branch = project.get('default_branch') or 'main'
        commit = self._get_json(
            f'{reference.api_url}/repository/commits/{quote(branch, safe="")}', cancel_event
        )
        timestamp = commit.get('committed_date') or commit.get('created_at')
        return self._artifact(
            branch, commit['id'], timestamp,
            gitlab_archive_url(reference, branch)
        )


class WebScrapeStrategy(DiscoveryStrategy):
    """Unauthenticated release/tag pages, used when the API is rate limited or unreachable."""
    name = 'web'

    def _artifact(self, reference, tag, download_url):
        return ReleaseArtifact(
            version_id=tag,
            download_url=download_url,
            discovery_tier=DiscoveryTier.WEB_SCRAPE
        )

    def _first_match(self, pattern, text):
        for match in re.finditer(pattern, text or ''):
            tag = unquote(match.group(1))
            if tag and tag.lower() != PLACEHOLDER_VERSION:
                return tag
        return None

    def _attempt_github(self, reference, asset_name_preference, cancel_event):
        repo_path = f'/{re.escape(reference.owner)}/{re.escape(reference.name)}'
        tag_link = repo_path + r'/releases/tag/([^"\'?#/\s<>]+)'

        page = self._get(f'{reference.url}/releases/latest', cancel_event, timeout=PAGE_TIMEOUT)
        tag = self._first_match(r'/releases/tag/([^/?#]+)$', page.final_url)
        if not tag:
            tag = self._first_match(tag_link, page.body)
        if not tag:
            tags_page = self._get(f'{reference.url}/tags', cancel_event, timeout=PAGE_TIMEOUT)
            tag = (self._first_match(tag_link, tags_page.body)
                   or self._first_match(repo_path + r'/archive/refs/tags/([^"\'?#\s<>]+?)\.zip', tags_page.body))
        if not tag:
            raise NotFound(f'No release or tag links found on the web pages of {reference}')

        return self._artifact(reference, tag, github_archive_url(reference, tag))

    def _attempt_gitlab(self, reference, asset_name_preference, cancel_event):
        repo_path = f'/{re.escape(reference.owner)}/{re.escape(reference.name)}'

        page = self._get(f'{reference.url}/-/releases/permalink/latest', cancel_event, timeout=PAGE_TIMEOUT)
        tag = self._first_match(r'/-/releases/(?!permalink)([^/?#]+)$', page.final_url)
        if not tag:
            tags_page = self._get(f'{reference.url}/-/tags', cancel_event, timeout=PAGE_TIMEOUT)
            tag = self._first_match(repo_path + r'/-/tags/([^"\'?#/\s<>]+)', tags_page.body)
        if not tag:
            raise NotFound(f'No release or tag links found on the web pages of {reference}')

        return self._artifact(reference, tag, gitlab_archive_url(reference, tag))


class ReleaseResolver:
    def __init__(self, context):
        """Initialize release resolver.

        Args:
            context: ResolverContext - Transport and cache collaborators
        """
        self.context = context
        self.api_strategies = [
            ReleaseAssetStrategy(context),
            TagStrategy(context),
            BranchHeadStrategy(context),
        ]
        self.web_strategy = WebScrapeStrategy(context)

    def _strategies_for(self, priority_hint):
        if priority_hint == DownloadPriority.PREFER_CODE:
            return self.api_strategies[2:]
        return self.api_strategies

    def _attempt(self, strategy, reference, asset_name_preference, cancel_event):
        try:
            artifact = strategy.attempt(reference, asset_name_preference, cancel_event)
        except (KeyError, TypeError, ValueError, IndexError, AttributeError) as e:
            raise NotFound(f'Unexpected {strategy.name} response for {reference}: {e!r}')

        if not artifact.version_id or artifact.version_id.strip().lower() == PLACEHOLDER_VERSION:
            raise NotFound(f'{strategy.name} returned unresolved version "{artifact.version_id}"')
        if not artifact.download_url:
            raise NotFound(f'{strategy.name} returned no download URL')
        return artifact

    def resolve(self, reference, asset_name_preference=None, priority_hint=None, cancel_event=None):
        """Find the latest installable artifact for a repository.

        Args:
            reference: RepositoryReference - Repository to resolve
            asset_name_preference: Optional str - Release asset name to prefer
            priority_hint: Optional DownloadPriority - PREFER_CODE starts at the branch head
            cancel_event: Optional threading.Event - Cancels outstanding network calls

        Returns:
            ReleaseArtifact - First artifact found by the tier chain

        Raises:
            ResolutionExhausted: If every tier failed
        """
        priority_hint = DownloadPriority(priority_hint) if priority_hint else DownloadPriority.PREFER_RELEASES
        cache_key = (reference, asset_name_preference, priority_hint)
        cached = self.context.cache_get(cache_key)
        if cached is not None:
            logger.debug("Using cached release %s for %s", cached.version_id, reference)
            return cached

        failures = []
        web_attempted = False

        for strategy in self._strategies_for(priority_hint):
            try:
                artifact = self._attempt(strategy, reference, asset_name_preference, cancel_event)
            except NotFound as e:
                logger.debug("Tier %s found nothing for %s: %s", strategy.name, reference, e)
                failures.append((strategy.name, e))
                continue
            except TransportError as e:
                if isinstance(e, RateLimited):
                    logger.warning("API rate limited while resolving %s: %s", reference, e)
                else:
                    logger.info("Tier %s failed for %s: %s", strategy.name, reference, e)
                failures.append((strategy.name, e))

                if web_attempted:
                    continue
                web_attempted = True
                try:
                    artifact = self._attempt(self.web_strategy, reference, asset_name_preference, cancel_event)
                except (NotFound, TransportError) as web_error:
                    logger.info("Web fallback failed for %s: %s", reference, web_error)
                    failures.append((self.web_strategy.name, web_error))
                    continue

            logger.info("Resolved %s to %s via %s", reference, artifact.version_id, artifact.discovery_tier.value)
            self.context.cache_set(cache_key, artifact)
            return artifact

        raise ResolutionExhausted(reference, failures)
