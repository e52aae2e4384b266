from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from uuid import uuid4

import requests
from requests import Response
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

DEFAULT_USER_AGENT = "BidHarvestBot/0.1 (+https://localhost; contact=local)"
logger = logging.getLogger(__name__)
_SLOW_REQUEST_SECONDS = 5.0
_CHUNK_SIZE = 64 * 1024


@dataclass(slots=True)
class PoliteHttpClient:
    """Rate-limited ``requests`` session shared by listing, detail and download fetches.

    Page fetches retry retryable status codes through urllib3; any other error
    status is raised as ``requests.HTTPError`` after retries are spent.
    Downloads use a second session that never retries, so an error status
    reaches the caller on the first response.
    """

    requests_per_second: float = 1.0
    timeout_seconds: float = 30.0
    user_agent: str = DEFAULT_USER_AGENT
    max_retries: int = 3
    backoff_factor: float = 0.5
    _session: requests.Session = field(init=False, repr=False)
    _download_session: requests.Session = field(init=False, repr=False)
    _last_request_monotonic: float = field(init=False, default=0.0)
    _rate_limit_lock: threading.Lock = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._session = requests.Session()
        self._session.headers.update(
            {
                "User-Agent": self.user_agent,
                "Accept": "text/html,application/xhtml+xml,*/*;q=0.8",
            }
        )
        # One attempt per download call; DocumentDownloader retries network errors itself.
        self._download_session = requests.Session()
        self._download_session.headers.update({"User-Agent": self.user_agent, "Accept": "*/*"})
        single_attempt = HTTPAdapter(max_retries=Retry(total=0, raise_on_status=False))
        self._download_session.mount("http://", single_attempt)
        self._download_session.mount("https://", single_attempt)

        retry = Retry(
            total=self.max_retries,
            connect=self.max_retries,
            read=self.max_retries,
            status=self.max_retries,
            backoff_factor=self.backoff_factor,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset({"GET"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self._session.mount("http://", adapter)
        self._session.mount("https://", adapter)
        self._last_request_monotonic = 0.0
        self._rate_limit_lock = threading.Lock()

    def __enter__(self) -> "PoliteHttpClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self._session.close()
        self._download_session.close()

    def get_text(self, url: str, *, params: dict[str, Any] | None = None) -> str:
        return self._request("GET", url, params=params).text

    def get_bytes(self, url: str, *, params: dict[str, Any] | None = None) -> bytes:
        return self._request("GET", url, params=params).content

    def download_to(self, url: str, destination: Path) -> int:
        """Stream ``url`` into ``destination`` via a temp file; returns bytes written."""

        destination.parent.mkdir(parents=True, exist_ok=True)
        temp_path = destination.parent / f"{destination.name}.{uuid4().hex}.part"
        written = 0
        try:
            response = self._request("GET", url, stream=True, session=self._download_session)
            with response, temp_path.open("wb") as handle:
                for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                    if chunk:
                        handle.write(chunk)
                        written += len(chunk)
            temp_path.replace(destination)
        finally:
            if temp_path.exists():
                temp_path.unlink()
        return written

    @property
    def timeout_tuple(self) -> tuple[float, float]:
        connect_timeout = max(1.0, min(self.timeout_seconds, 5.0))
        read_timeout = max(connect_timeout, self.timeout_seconds)
        return connect_timeout, read_timeout

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        stream: bool = False,
        session: requests.Session | None = None,
    ) -> Response:
        self._sleep_for_rate_limit()
        started_at = time.monotonic()
        response = (session or self._session).request(
            method=method,
            url=url,
            params=params,
            timeout=self.timeout_tuple,
            stream=stream,
        )
        elapsed = time.monotonic() - started_at
        if elapsed > _SLOW_REQUEST_SECONDS:
            logger.warning("Slow HTTP %s %.3fs %s", method, elapsed, url)
        try:
            response.raise_for_status()
        except requests.HTTPError:
            response.close()
            raise
        return response

    def _sleep_for_rate_limit(self) -> None:
        if self.requests_per_second <= 0:
            return
        min_interval = 1.0 / self.requests_per_second
        with self._rate_limit_lock:
            elapsed = time.monotonic() - self._last_request_monotonic
            sleep_seconds = min_interval - elapsed
            if sleep_seconds > 0:
                time.sleep(sleep_seconds)
            self._last_request_monotonic = time.monotonic()
