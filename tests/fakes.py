"""
Test doubles shared by the test modules: an in-memory HTTP transport that
serves canned API responses and builds zip archives on download.
"""

import json
import zipfile
from pathlib import Path

from errors import DownloadFailed, TransportError
from http_transport import HttpResponse


def json_response(data, status=200, url=''):
    return HttpResponse(status=status, body=json.dumps(data), final_url=url)


def write_zip(destination, files):
    """Write a zip archive from a {path in archive: text content} mapping."""
    with zipfile.ZipFile(destination, 'w') as archive:
        for name, content in files.items():
            archive.writestr(name, content)


def toc_text(title, version='1.0.0', **extra):
    lines = [f'## Title: {title}', f'## Version: {version}', '## Interface: 110000']
    for key, value in extra.items():
        lines.append(f'## {key.replace("_", "-")}: {value}')
    return '\n'.join(lines) + '\n'


def make_addon_folder(root, folder_name, toc_name=None, **toc_fields):
    """Create an installed addon folder with a single .toc file."""
    folder = Path(root) / folder_name
    folder.mkdir(parents=True, exist_ok=True)
    title = toc_fields.pop('title', folder_name)
    (folder / f'{toc_name or folder_name}.toc').write_text(toc_text(title, **toc_fields), encoding='utf-8')
    return folder


class FakeTransport:
    """Serves registered responses; unknown URLs answer 404."""

    def __init__(self):
        self.responses = {}
        self.archives = {}
        self.requests = []
        self.downloads = []

    def add(self, url, response):
        self.responses[url] = response

    def add_json(self, url, data, status=200):
        self.responses[url] = json_response(data, status=status, url=url)

    def add_archive(self, url, files):
        self.archives[url] = files

    def get(self, url, headers=None, timeout=10, cancel_event=None):
        self.requests.append(url)
        if cancel_event is not None and cancel_event.is_set():
            raise TransportError(f'Request cancelled: {url}')
        response = self.responses.get(url)
        if response is None:
            return HttpResponse(status=404, body='Not Found', final_url=url)
        if isinstance(response, Exception):
            raise response
        return response

    def download(self, url, destination, timeout=30, cancel_event=None):
        self.downloads.append(url)
        files = self.archives.get(url)
        if files is None:
            raise DownloadFailed(f'Download failed: HTTP 404 for {url}')
        write_zip(destination, files)
        return Path(destination).stat().st_size


def github_release(transport, owner, name, tag, files, asset_name=None):
    """Register a GitHub latest release whose zip asset holds `files`."""
    asset_name = asset_name or f'{name}-{tag}.zip'
    download_url = f'https://github.com/{owner}/{name}/releases/download/{tag}/{asset_name}'
    transport.add_json(f'https://api.github.com/repos/{owner}/{name}/releases/latest', {
        'tag_name': tag,
        'published_at': '2024-05-01T12:00:00Z',
        'assets': [{'name': asset_name, 'browser_download_url': download_url, 'size': 100}],
    })
    transport.add_archive(download_url, files)
    return download_url
