"""
Unit tests for http_transport module
"""
import shutil
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import MagicMock

import requests

from errors import DownloadFailed, TransportError
from http_transport import MAX_REDIRECTS, HttpResponse, HttpTransport


def mock_response(status=200, text='', url='https://example.com', chunks=()):
    response = MagicMock()
    response.status_code = status
    response.text = text
    response.url = url
    response.headers = {'Content-Type': 'application/json'}
    response.iter_content.return_value = list(chunks)
    response.__enter__.return_value = response
    return response


class TestHttpTransport(unittest.TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.session.headers = {}
        self.transport = HttpTransport(github_token='gh-secret', gitlab_token='gl-secret', session=self.session)
        self.temp_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_session_limits_redirects(self):
        self.assertEqual(self.session.max_redirects, MAX_REDIRECTS)

    def test_get_returns_final_url(self):
        self.session.get.return_value = mock_response(
            text='{"tag_name": "v1"}', url='https://github.com/o/r/releases/tag/v1'
        )

        response = self.transport.get('https://github.com/o/r/releases/latest')

        self.assertEqual(response.status, 200)
        self.assertEqual(response.final_url, 'https://github.com/o/r/releases/tag/v1')
        self.assertEqual(response.json(), {'tag_name': 'v1'})

    def test_tokens_only_sent_to_api_hosts(self):
        self.session.get.return_value = mock_response()

        self.transport.get('https://api.github.com/repos/o/r')
        self.assertEqual(self.session.get.call_args.kwargs['headers'], {'Authorization': 'token gh-secret'})

        self.transport.get('https://gitlab.com/api/v4/projects/o%2Fr')
        self.assertEqual(self.session.get.call_args.kwargs['headers'], {'PRIVATE-TOKEN': 'gl-secret'})

        self.transport.get('https://github.com/o/r/releases/latest')
        self.assertIsNone(self.session.get.call_args.kwargs['headers'])

    def test_network_error_is_transport_error(self):
        self.session.get.side_effect = requests.ConnectionError('boom')

        with self.assertRaises(TransportError):
            self.transport.get('https://api.github.com/repos/o/r')

    def test_cancelled_get(self):
        cancel = threading.Event()
        cancel.set()

        with self.assertRaises(TransportError):
            self.transport.get('https://api.github.com/repos/o/r', cancel_event=cancel)
        self.session.get.assert_not_called()

    def test_cancel_during_get_applies_when_request_returns(self):
        cancel = threading.Event()

        def slow_get(url, **kwargs):
            cancel.set()
            return mock_response(text='{}')

        self.session.get.side_effect = slow_get

        with self.assertRaises(TransportError):
            self.transport.get('https://api.github.com/repos/o/r', cancel_event=cancel)
        self.assertEqual(self.session.get.call_count, 1)
        self.assertEqual(self.session.get.call_args.kwargs['timeout'], 10)

    def test_invalid_json(self):
        with self.assertRaises(TransportError):
            HttpResponse(status=200, body='<html>', final_url='https://example.com').json()

    def test_download_streams_to_file(self):
        self.session.get.return_value = mock_response(chunks=[b'abc', b'', b'def'])
        destination = self.temp_dir / 'a.zip'

        written = self.transport.download('https://example.com/a.zip', destination)

        self.assertEqual(written, 6)
        self.assertEqual(destination.read_bytes(), b'abcdef')
        self.assertTrue(self.session.get.call_args.kwargs['stream'])

    def test_download_http_error_leaves_no_file(self):
        self.session.get.return_value = mock_response(status=404)
        destination = self.temp_dir / 'a.zip'

        with self.assertRaises(DownloadFailed):
            self.transport.download('https://example.com/a.zip', destination)
        self.assertFalse(destination.exists())

    def test_download_too_many_redirects(self):
        self.session.get.side_effect = requests.TooManyRedirects('loop')

        with self.assertRaises(DownloadFailed):
            self.transport.download('https://example.com/a.zip', self.temp_dir / 'a.zip')

    def test_cancelled_download_discards_partial_file(self):
        cancel = threading.Event()
        response = mock_response()
        destination = self.temp_dir / 'a.zip'

        def chunks(chunk_size):
            yield b'abc'
            cancel.set()
            yield b'def'

        response.iter_content.side_effect = chunks
        self.session.get.return_value = response

        with self.assertRaises(DownloadFailed):
            self.transport.download('https://example.com/a.zip', destination, cancel_event=cancel)
        self.assertFalse(destination.exists())


if __name__ == '__main__':
    unittest.main()
