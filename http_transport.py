"""
HTTP Transport
Thin requests wrapper used by the release resolver and the archive installer
"""

import json
import logging
import os
from dataclasses import dataclass, field

import requests

from errors import DownloadFailed, TransportError

logger = logging.getLogger(__name__)

METADATA_TIMEOUT = 10
DOWNLOAD_TIMEOUT = 30
PAGE_TIMEOUT = 30
MAX_REDIRECTS = 5
CHUNK_SIZE = 8192

USER_AGENT = 'wow-addon-manager'


@dataclass
class HttpResponse:
    status: int
    body: str
    final_url: str
    headers: dict = field(default_factory=dict)

    @property
    def ok(self):
        return 200 <= self.status < 300

    def json(self):
        """Decode the body as JSON.

        Raises:
            TransportError: If the body is not valid JSON
        """
        try:
            return json.loads(self.body)
        except ValueError as e:
            raise TransportError(f'Invalid JSON from {self.final_url}: {e}')


class HttpTransport:
    def __init__(self, github_token=None, gitlab_token=None, session=None):
        """Initialize HTTP transport.

        Args:
            github_token: Optional str - GitHub API token (defaults to GITHUB_TOKEN env var)
            gitlab_token: Optional str - GitLab API token (defaults to GITLAB_TOKEN env var)
            session: Optional requests.Session - Session to reuse
        """
        self.github_token = github_token or os.environ.get('GITHUB_TOKEN')
        self.gitlab_token = gitlab_token or os.environ.get('GITLAB_TOKEN')
        self.session = session or requests.Session()
        self.session.max_redirects = MAX_REDIRECTS
        self.session.headers.setdefault('User-Agent', USER_AGENT)

    def _auth_headers(self, url):
        """Build authentication headers for platform API URLs only."""
        headers = {}
        if url.startswith('https://api.github.com/') and self.github_token:
            headers['Authorization'] = f'token {self.github_token}'
        elif url.startswith('https://gitlab.com/api/') and self.gitlab_token:
            headers['PRIVATE-TOKEN'] = self.gitlab_token
        return headers

    def _check_cancelled(self, cancel_event, url):
        if cancel_event is not None and cancel_event.is_set():
            raise TransportError(f'Request cancelled: {url}')

    def get(self, url, headers=None, timeout=METADATA_TIMEOUT, cancel_event=None):
        """Fetch a URL and return its status, text body and final URL.

        Cancellation is checked before the request is sent and after it returns;
        a request already in flight runs until it completes or hits the timeout.

        Args:
            url: str - URL to fetch
            headers: Optional dict - Extra request headers
            timeout: int - Timeout in seconds
            cancel_event: Optional threading.Event - Set to cancel the call

        Returns:
            HttpResponse - Response after following redirects

        Raises:
            TransportError: On network errors, timeouts or cancellation
        """
        self._check_cancelled(cancel_event, url)

        request_headers = self._auth_headers(url)
        if headers:
            request_headers.update(headers)

        try:
            response = self.session.get(url, headers=request_headers or None, timeout=timeout)
        except requests.RequestException as e:
            raise TransportError(f'Request to {url} failed: {e}')

        self._check_cancelled(cancel_event, url)
        logger.debug("GET %s -> %s", url, response.status_code)
        return HttpResponse(
            status=response.status_code,
            body=response.text,
            final_url=response.url,
            headers=dict(response.headers)
        )

    def download(self, url, destination, timeout=DOWNLOAD_TIMEOUT, cancel_event=None):
        """Stream a file to disk, following at most MAX_REDIRECTS redirects.

        Args:
            url: str - URL to download
            destination: Path - File to write
            timeout: int - Timeout in seconds
            cancel_event: Optional threading.Event - Set to cancel the download

        Returns:
            int - Number of bytes written

        Raises:
            DownloadFailed: On HTTP errors, network errors or cancellation
        """
        written = 0
        try:
            self._check_cancelled(cancel_event, url)
            with self.session.get(url, headers=self._auth_headers(url) or None,
                                  stream=True, timeout=timeout) as response:
                if response.status_code != 200:
                    raise DownloadFailed(f'Download failed: HTTP {response.status_code} for {url}')

                with open(destination, 'wb') as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        self._check_cancelled(cancel_event, url)
                        if chunk:
                            f.write(chunk)
                            written += len(chunk)
        except requests.TooManyRedirects:
            self._discard(destination)
            raise DownloadFailed(f'Download failed: too many redirects for {url}')
        except (requests.RequestException, TransportError, OSError) as e:
            self._discard(destination)
            raise DownloadFailed(f'Download failed: {e}')
        except DownloadFailed:
            self._discard(destination)
            raise

        logger.info("Downloaded %s (%d bytes)", url, written)
        return written

    def _discard(self, path):
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            logger.error("Failed to remove partial download %s: %s", path, e)
