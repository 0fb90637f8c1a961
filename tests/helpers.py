"""Test doubles: a scripted requests session and a fake provider."""

import io
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

import requests

from cgprovision.providers.base import Provider


def make_response(status: int = 200, body: bytes = b"", headers: Optional[Dict[str, str]] = None,
                  url: str = "https://example.com/file") -> requests.Response:
    """Build a real requests.Response backed by an in-memory body."""
    response = requests.Response()
    response.status_code = status
    response.raw = io.BytesIO(body)
    response.url = url
    if headers:
        response.headers.update(headers)
    return response


class FakeSession:
    """Stand-in for requests.Session that replays scripted outcomes.

    Each queued item is either a Response or an exception to raise.
    """

    def __init__(self, *outcomes: Any):
        self.outcomes: List[Any] = list(outcomes)
        self.calls: List[Dict[str, Any]] = []

    def queue(self, *outcomes: Any) -> None:
        self.outcomes.extend(outcomes)

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.outcomes:
            raise AssertionError(f"unexpected request: {method} {url}")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeProvider(Provider):
    """Provider writing a fixed payload and counting downloads."""

    name = "fake"

    def __init__(self, payload: bytes = b"#!/bin/sh\necho ok\n", error: Optional[Exception] = None):
        self.payload = payload
        self.error = error
        self.downloads: List[str] = []

    def validate_vars(self, provider_vars):
        return []

    def find_exact_version(self, provider_vars, version):
        return version

    def download_binary(self, target, provider_vars, version, progress=None):
        self.downloads.append(str(version))
        target.write(self.payload[:4])
        if self.error is not None:
            raise self.error
        target.write(self.payload[4:])




def run_concurrently(func: Callable[[], Any], count: int = 8) -> List[Any]:
    """Call ``func`` from ``count`` threads released at the same moment."""
    barrier = threading.Barrier(count)

    def call():
        barrier.wait()
        return func()

    with ThreadPoolExecutor(max_workers=count) as executor:
        futures = [executor.submit(call) for _ in range(count)]
    return [future.result() for future in futures]
