"""Time-bounded HTTP requests for FeedWatcher."""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional

import requests
from requests.structures import CaseInsensitiveDict

from .config import config

logger = logging.getLogger(__name__)

CHUNK_SIZE = 16 * 1024


class AbortSignal:
    """A cancellation flag that closes registered in-flight requests.

    Aborting is permanent: every callback registered at that point is run
    once, and callbacks registered afterwards run immediately.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._next_token = 0

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self) -> None:
        with self._lock:
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()

        for callback in callbacks:
            _run_quietly(callback)

    def register(self, callback: Callable[[], None]) -> int:
        """Register a callback to run on abort. Returns a token for unregister()."""
        with self._lock:
            if not self._event.is_set():
                token = self._next_token
                self._next_token += 1
                self._callbacks[token] = callback
                return token

        _run_quietly(callback)
        return -1

    def unregister(self, token: int) -> None:
        with self._lock:
            self._callbacks.pop(token, None)


@dataclass
class FetchResponse:
    """A fully read (or, for HEAD, unread) and released HTTP response."""

    url: str
    status: int
    headers: Mapping[str, str] = field(default_factory=CaseInsensitiveDict)
    content: bytes = b""
    encoding: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.content.decode(self.encoding or "utf-8", errors="replace")


class HttpFetcher:
    """Performs GET/HEAD requests bounded by a deadline and an abort signal."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        session: Optional[requests.Session] = None,
        signal: Optional[AbortSignal] = None,
    ):
        self.timeout = timeout if timeout is not None else config.REQUEST_TIMEOUT
        self.user_agent = user_agent or config.USER_AGENT
        self.session = session or requests.Session()
        self.signal = signal or AbortSignal()

    def fetch(
        self,
        url: str,
        method: str = "GET",
        timeout: Optional[float] = None,
        signal: Optional[AbortSignal] = None,
    ) -> FetchResponse:
        """Request a URL and return the response with its body read.

        The underlying connection is always released before returning. HEAD
        responses are never read.

        Until the response headers arrive, requests enforces timeout
        separately for connecting and for each socket read, and an abort
        cannot interrupt that phase. Once they arrive the whole request,
        body included, must finish within timeout of the start.

        Args:
            url: URL to request
            method: HTTP method, "GET" or "HEAD"
            timeout: Deadline in seconds for the whole request, defaults to
                the fetcher's timeout
            signal: Optional abort signal in addition to the fetcher's own

        Returns:
            FetchResponse; any status code is returned as-is

        Raises:
            RequestTimeoutError: If the deadline passes before the body is read
            RequestAbortedError: If either abort signal fires
            FetchError: For any other network failure
        """
        timeout = self.timeout if timeout is None else timeout
        method = method.upper()
        signals = [s for s in (self.signal, signal) if s is not None]

        if any(s.aborted for s in signals):
            raise RequestAbortedError(f"Request for {url} aborted")

        deadline = time.monotonic() + timeout

        try:
            response = self.session.request(
                method,
                url,
                headers={"User-Agent": self.user_agent},
                timeout=(timeout, timeout),
                stream=True,
                allow_redirects=True,
            )
        except requests.Timeout as e:
            raise RequestTimeoutError(f"Request for {url} timed out") from e
        except requests.RequestException as e:
            if any(s.aborted for s in signals):
                raise RequestAbortedError(f"Request for {url} aborted") from e
            raise FetchError(f"Request for {url} failed: {e}") from e

        if time.monotonic() >= deadline:
            response.close()
            raise RequestTimeoutError(f"Request for {url} timed out")

        expired = threading.Event()

        def expire():
            expired.set()
            response.close()

        timer = threading.Timer(max(deadline - time.monotonic(), 0), expire)
        timer.daemon = True
        tokens = [(s, s.register(response.close)) for s in signals]

        try:
            timer.start()
            content = b""
            if method != "HEAD":
                content = self._read_body(response, url, deadline)
            return FetchResponse(
                url=response.url or url,
                status=response.status_code,
                headers=response.headers,
                content=content,
                encoding=response.encoding,
            )
        except Exception as e:
            if expired.is_set():
                raise RequestTimeoutError(f"Request for {url} timed out") from e
            if any(s.aborted for s in signals):
                raise RequestAbortedError(f"Request for {url} aborted") from e
            if isinstance(e, requests.RequestException):
                raise FetchError(f"Request for {url} failed: {e}") from e
            raise
        finally:
            timer.cancel()
            for s, token in tokens:
                s.unregister(token)
            response.close()

    def abort(self) -> None:
        """Abort every in-flight and future request made by this fetcher."""
        logger.debug("Aborting in-flight requests")
        self.signal.abort()

    def reset(self) -> None:
        """Allow requests again after abort()."""
        if self.signal.aborted:
            self.signal = AbortSignal()

    def close(self) -> None:
        self.session.close()

    @staticmethod
    def _read_body(response: requests.Response, url: str, deadline: float) -> bytes:
        chunks = []
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            if time.monotonic() > deadline:
                raise RequestTimeoutError(f"Request for {url} timed out")
            chunks.append(chunk)
        return b"".join(chunks)


def _run_quietly(callback: Callable[[], None]) -> None:
    try:
        callback()
    except Exception as e:
        logger.debug(f"Abort callback failed: {e}")


class FetchError(Exception):
    """Raised when a request fails at the network level."""

    pass


class RequestTimeoutError(FetchError, TimeoutError):
    """Raised when a request does not complete before its deadline."""

    pass


class RequestAbortedError(FetchError):
    """Raised when a request is cancelled through an abort signal."""

    pass
