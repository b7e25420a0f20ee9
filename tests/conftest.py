"""
Shared fixtures for the upload tests.
"""

import threading
import time
from unittest.mock import Mock

import pytest

from appstore_upload import UploadOperation, UploadOperationHeader


class EchoSession:
    """
    Stand-in for requests.Session that records every body it receives.

    Responses echo the received bytes back in ``content``.
    """

    def __init__(self, status_codes=None, errors=None, delay=0.0):
        self.status_codes = status_codes or {}
        self.errors = errors or {}
        self.delay = delay
        self.received = {}
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    @property
    def hits(self):
        return sum(len(bodies) for bodies in self.received.values())

    def send(self, request, timeout=None):
        with self._lock:
            self.received.setdefault(request.url, []).append(request.body)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            if request.url in self.errors:
                raise self.errors[request.url]
            response = Mock()
            response.status_code = self.status_codes.get(request.url, 200)
            response.reason = "OK" if response.status_code < 400 else "Forbidden"
            response.text = "" if response.status_code < 400 else "SignatureDoesNotMatch"
            response.content = request.body
            return response
        finally:
            with self._lock:
                self.in_flight -= 1

    def close(self):
        pass


@pytest.fixture
def echo_session():
    return EchoSession()


@pytest.fixture
def source_bytes():
    """300 bytes, 0..255 then 0..43."""
    return bytes(i % 256 for i in range(300))


def make_operation(offset, length, url, headers=None, method="PUT"):
    return UploadOperation(
        offset=offset,
        length=length,
        method=method,
        url=url,
        headers=tuple(
            UploadOperationHeader(name=name, value=value)
            for name, value in (headers or [("Content-Type", "image/png")])
        ),
    )


@pytest.fixture
def two_halves():
    """Two operations splitting a 300 byte asset in half."""
    return [
        make_operation(0, 150, "https://upload.example.com/asset/part1"),
        make_operation(150, 150, "https://upload.example.com/asset/part2"),
    ]
