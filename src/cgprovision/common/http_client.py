"""Shared HTTP helpers used by the component, module and provider layers.

Wraps a ``requests.Session`` with an on-disk body cache, ETag revalidation
and an offline fallback: when the network is unreachable and a previous
response was cached, the cached copy is served instead of failing.
"""
from __future__ import annotations

import json
import logging
import socket
import ssl
import threading
import time
from typing import Any, BinaryIO, Callable, Dict, Iterable, Iterator, Mapping, Optional
from urllib.parse import urlsplit

import requests

from cgprovision.constants import Constants
from cgprovision.common.errors import DecodeError, HttpStatusError, NetworkError
from cgprovision.common.http_cache import CacheWriter, HttpCache
from cgprovision.common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def _iter_file(handle: BinaryIO, chunk_size: int = Constants.DOWNLOAD_CHUNK_SIZE) -> Iterator[bytes]:
    try:
        while True:
            chunk = handle.read(chunk_size)
            if not chunk:
                break
            yield chunk
    finally:
        handle.close()


class TeeReader:
    """Pass-through over a chunk stream that reports progress and feeds a cache.

    A failing cache write only stops caching, the stream keeps flowing. A
    failing read discards the partial cache file and re-raises. The cache
    file is promoted once the stream is exhausted, and only then is
    ``on_commit`` called.
    """

    def __init__(
        self,
        chunks: Iterable[bytes],
        *,
        writer: Optional[CacheWriter] = None,
        progress: Optional[ProgressCallback] = None,
        total: int = 0,
        on_commit: Optional[Callable[[], None]] = None,
    ):
        self._chunks = iter(chunks)
        self._writer = writer
        self._on_commit = on_commit
        self._progress = progress if total > 0 else None
        self.total = total
        self.bytes_read = 0

    @property
    def caching(self) -> bool:
        return self._writer is not None

    def _write(self, chunk: bytes) -> None:
        if self._writer is None:
            return
        try:
            self._writer.write(chunk)
        except OSError as exc:
            logger.warning("Could not write cache file %s: %s", self._writer.final_path, exc)
            self._abort()

    def _abort(self) -> None:
        if self._writer is not None:
            self._writer.discard()
            self._writer = None

    def _finish(self) -> None:
        if self._progress is not None:
            self._progress(self.total, self.total)
        if self._writer is not None:
            try:
                self._writer.commit()
            except OSError as exc:
                logger.warning("Could not finalize cache file %s: %s", self._writer.final_path, exc)
                self._writer.discard()
            else:
                if self._on_commit is not None:
                    self._on_commit()
            self._writer = None

    def __iter__(self) -> Iterator[bytes]:
        while True:
            try:
                chunk = next(self._chunks)
            except StopIteration:
                self._finish()
                return
            except Exception:
                self._abort()
                raise
            if not chunk:
                continue
            self.bytes_read += len(chunk)
            if self._progress is not None:
                self._progress(self.bytes_read, self.total)
            self._write(chunk)
            yield chunk

    def close(self) -> None:
        """Stop reading; an unfinished cache file is discarded."""
        self._abort()
        close = getattr(self._chunks, "close", None)
        if close is not None:
            close()


class HttpBody:
    """A response body, either streamed from the network or read from the cache.

    Attributes:
        status: HTTP status of the network response, or None when the body
            was served from the cache.
        from_cache: True when the bytes come from a cached file.
        offline: True when the cache was used because the network failed.
    """

    def __init__(
        self,
        url: str,
        chunks: Iterable[bytes],
        *,
        status: Optional[int] = None,
        headers: Optional[Mapping[str, str]] = None,
        from_cache: bool = False,
        offline: bool = False,
        on_close: Optional[Callable[[], None]] = None,
    ):
        self.url = url
        self.status = status
        self.headers: Mapping[str, str] = headers if headers is not None else {}
        self.from_cache = from_cache
        self.offline = offline
        self._chunks = chunks
        self._on_close = on_close
        self._consumed = False

    @property
    def failed(self) -> bool:
        """True when the server answered with a failure status."""
        return not self.from_cache and self.status is not None and self.status >= 300

    def iter_chunks(self) -> Iterator[bytes]:
        if self._consumed:
            raise ValueError(f"response body for {self.url} already consumed")
        self._consumed = True
        try:
            yield from self._chunks
        finally:
            self.close()

    def read(self) -> bytes:
        return b"".join(self.iter_chunks())

    def copy_to(self, target: BinaryIO) -> int:
        """Stream the whole body into ``target``; returns the number of bytes."""
        written = 0
        for chunk in self.iter_chunks():
            target.write(chunk)
            written += len(chunk)
        return written

    def close(self) -> None:
        if isinstance(self._chunks, TeeReader):
            self._chunks.close()
        else:
            close = getattr(self._chunks, "close", None)
            if close is not None:
                close()
        if self._on_close is not None:
            self._on_close()
            self._on_close = None

    def __enter__(self) -> "HttpBody":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class HttpClient:
    """Cached HTTP access on top of one ``requests.Session``."""

    def __init__(self, cache: HttpCache, session: Optional[requests.Session] = None):
        self.cache = cache
        self.session = session if session is not None else requests.Session()

    def _cached_body(self, url: str, *, offline: bool = False) -> Optional[HttpBody]:
        handle = self.cache.open_body(url)
        if handle is None:
            return None
        return HttpBody(url, _iter_file(handle), from_cache=True, offline=offline)

    def fetch(
        self,
        url: str,
        method: str = "GET",
        max_age: float = 0,
        timeout: Optional[float] = Constants.REQUEST_TIMEOUT,
        progress: Optional[ProgressCallback] = None,
        json_body: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> HttpBody:
        """Fetch ``url``, using and refreshing the on-disk cache.

        Args:
            url: Target URL.
            method: HTTP method.
            max_age: Seconds a cached body stays fresh; 0 disables caching.
            timeout: Request timeout in seconds, None for no limit.
            progress: Optional ``callback(bytes_read, total)``.
            json_body: Optional payload sent as JSON.
            headers: Extra request headers.

        Returns:
            HttpBody: the response body. A failure status is returned, not raised.

        Raises:
            NetworkError: transport failure (or 304) with nothing cached.
        """
        safe_target = safe_url(url)
        if max_age > 0 and self.cache.is_fresh(url, max_age):
            cached = self._cached_body(url)
            if cached is not None:
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP cache hit",
                        extra=extra_context(
                            event="cache_hit",
                            component="http_client",
                            action=method,
                            target=safe_target,
                        ),
                    )
                return cached

        request_headers = dict(headers or {})
        if self.cache.has_body(url):
            etag = self.cache.load_etag(url)
            if etag:
                request_headers["If-None-Match"] = etag

        with Timer() as t:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP request",
                    extra=extra_context(
                        event="http_request",
                        component="http_client",
                        action=method,
                        target=safe_target,
                    ),
                )
            try:
                response = self.session.request(
                    method,
                    url,
                    headers=request_headers,
                    json=json_body,
                    timeout=timeout,
                    stream=True,
                )
            except requests.RequestException as exc:
                return self._fallback(url, method, exc)

            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP response",
                    extra=extra_context(
                        event="http_response",
                        component="http_client",
                        action=method,
                        status_code=response.status_code,
                        duration_ms=t.duration_ms(),
                        target=safe_target,
                    ),
                )

        if response.status_code == 304:
            response.close()
            return self._fallback(url, method, None)

        if response.status_code >= 300:
            self.cache.discard_etag(url)
            return HttpBody(
                url,
                response.iter_content(Constants.DOWNLOAD_CHUNK_SIZE),
                status=response.status_code,
                headers=response.headers,
                on_close=response.close,
            )

        # The etag is rewritten only once the new body is committed.
        self.cache.discard_etag(url)
        etag = response.headers.get("ETag")

        def store_etag() -> None:
            if not self.cache.save_etag(url, etag):
                logger.debug("No etag stored for %s", safe_target)

        writer = None
        if max_age > 0:
            try:
                writer = self.cache.open_writer(url)
            except OSError as exc:
                logger.warning("Could not create cache file for %s: %s", safe_target, exc)

        total = _content_length(response.headers) if progress is not None else 0
        reader = TeeReader(
            response.iter_content(Constants.DOWNLOAD_CHUNK_SIZE),
            writer=writer,
            progress=progress,
            total=total,
            on_commit=store_etag,
        )
        return HttpBody(
            url,
            reader,
            status=response.status_code,
            headers=response.headers,
            on_close=response.close,
        )

    def _fallback(self, url: str, method: str, exc: Optional[Exception]) -> HttpBody:
        """Serve the cached body after a 304 (``exc`` is None) or a transport error."""
        cached = self._cached_body(url, offline=exc is not None)
        if cached is not None:
            if exc is None:
                self.cache.touch(url)
                logger.debug("Server returned 304 Not Modified, using cached %s", safe_url(url))
            else:
                logger.debug("Offline (%s), using cached %s", exc, safe_url(url))
            return cached
        self.cache.discard_etag(url)
        if exc is None:
            raise NetworkError(f"{method} {safe_url(url)}: not modified but nothing cached")
        raise NetworkError(f"{method} {safe_url(url)}: {exc}") from exc

    def fetch_file(
        self,
        url: str,
        max_age: float = 0,
        progress: Optional[ProgressCallback] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> HttpBody:
        """Like ``fetch`` but raises HttpStatusError for failure statuses."""
        body = self.fetch(url, max_age=max_age, progress=progress, headers=headers)
        if body.failed:
            body.close()
            raise HttpStatusError(url, body.status)
        return body

    def fetch_json(
        self,
        url: str,
        max_age: float = 0,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """GET ``url`` and decode the body as JSON."""
        body = self.fetch(
            url,
            max_age=max_age,
            timeout=Constants.JSON_REQUEST_TIMEOUT,
            headers=headers,
        )
        if body.failed:
            body.close()
            raise HttpStatusError(url, body.status)
        return _decode_json(url, body)

    def post_json(self, url: str, payload: Any, headers: Optional[Dict[str, str]] = None) -> Any:
        """POST ``payload`` as JSON and decode the JSON answer; never cached."""
        body = self.fetch(
            url,
            method="POST",
            timeout=Constants.JSON_REQUEST_TIMEOUT,
            json_body=payload,
            headers=headers,
        )
        if body.failed:
            body.close()
            raise HttpStatusError(url, body.status)
        return _decode_json(url, body)


def _content_length(headers: Mapping[str, str]) -> int:
    try:
        return max(int(headers.get("Content-Length", 0)), 0)
    except (TypeError, ValueError):
        return 0


def _decode_json(url: str, body: HttpBody) -> Any:
    try:
        data = body.read()
    except requests.RequestException as exc:
        raise NetworkError(f"read response from {safe_url(url)}: {exc}") from exc
    try:
        return json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        if is_debug_enabled(logger):
            logger.debug(
                "JSON decode error",
                extra=extra_context(
                    event="parse",
                    component="http_client",
                    action="fetch_json",
                    outcome="json_decode_error",
                    target=safe_url(url),
                ),
            )
        raise DecodeError(f"decode response from '{safe_url(url)}': {exc}") from exc


class TLSProbe:
    """Check once per host whether it serves a valid TLS certificate.

    Results, positive or negative, are kept for the lifetime of the probe.
    """

    def __init__(self, timeout: float = Constants.TLS_PROBE_TIMEOUT):
        self.timeout = timeout
        self._results: Dict[str, bool] = {}
        self._lock = threading.Lock()

    def is_tls(self, trimmed_url: str) -> bool:
        try:
            parts = urlsplit("https://" + trimmed_url)
            host = parts.hostname
            port = parts.port or 443
        except ValueError:
            return False
        if not host:
            return False
        key = f"{host}:{port}"
        with self._lock:
            if key not in self._results:
                self._results[key] = self._probe(host, port)
            return self._results[key]

    def _probe(self, host: str, port: int) -> bool:
        context = ssl.create_default_context()
        try:
            with socket.create_connection((host, port), timeout=self.timeout) as sock:
                with context.wrap_socket(sock, server_hostname=host) as tls:
                    cert = tls.getpeercert()
        except (OSError, ValueError) as exc:
            logger.debug("TLS probe for %s:%s failed: %s", host, port, exc)
            return False
        not_after = (cert or {}).get("notAfter")
        if not not_after:
            return False
        return ssl.cert_time_to_seconds(not_after) >= time.time()


def trim_url(url: str) -> str:
    """Remove the scheme and trailing slashes from ``url``."""
    _, sep, rest = url.partition("://")
    return (rest if sep else url).rstrip("/")


def base_url(protocol: str, trimmed_url: str, probe: TLSProbe) -> str:
    """Prefix ``trimmed_url`` with ``protocol`` or its secure variant (``https``, ``wss``)."""
    if probe.is_tls(trimmed_url):
        return f"{protocol}s://{trimmed_url}"
    return f"{protocol}://{trimmed_url}"


def has_content_type(headers: Mapping[str, str], mimetype: str) -> bool:
    """Return True if the Content-Type header lists ``mimetype``."""
    content_type = ""
    for key, value in headers.items():
        if key.lower() == "content-type":
            content_type = value
            break
    if not content_type:
        return mimetype == "application/octet-stream"
    for entry in content_type.split(","):
        media_type = entry.split(";", 1)[0].strip().lower()
        if "/" not in media_type:
            break
        if media_type == mimetype:
            return True
    return False
