from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import Awaitable, Callable

import requests
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from bidharvest.normalize.schema import RawDocument

from .http import PoliteHttpClient

logger = logging.getLogger(__name__)

_INVALID_CHARS = re.compile(r'[/\\:*?"<>|\s]')
_REPEATED_UNDERSCORES = re.compile(r"_+")
_EXTENSION = re.compile(r"(\.[A-Za-z0-9]{1,10})$")
MAX_STEM_LENGTH = 200
MAX_DELAY_SECONDS = 60.0
_NETWORK_ERRORS = (requests.ConnectionError, requests.Timeout)


def sanitize_file_name(file_name: str) -> str:
    """Filesystem-safe name that keeps the extension intact."""

    cleaned = _REPEATED_UNDERSCORES.sub("_", _INVALID_CHARS.sub("_", file_name.strip()))
    match = _EXTENSION.search(cleaned)
    extension = match.group(1) if match else ""
    stem = cleaned[: len(cleaned) - len(extension)] if extension else cleaned
    stem = stem.lstrip(".").rstrip("._")[:MAX_STEM_LENGTH] or "file"
    return f"{stem}{extension}"


class DocumentDownloader:
    """Saves attachments under ``<documents_dir>/<contract id>/``.

    Network failures are retried with a doubling delay; an HTTP error status
    is final. A failed download is recorded on the document and never raised.
    """

    def __init__(
        self,
        client: PoliteHttpClient,
        documents_dir: Path,
        *,
        max_retries: int = 3,
        initial_delay_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.documents_dir = documents_dir
        self.max_retries = max(0, max_retries)
        self.initial_delay_seconds = initial_delay_seconds
        self._sleep = sleep

    def destination_for(self, document: RawDocument, contract_id: str) -> Path:
        return self.documents_dir / sanitize_file_name(contract_id) / sanitize_file_name(document.file_name)

    async def download(self, document: RawDocument, contract_id: str) -> RawDocument:
        destination = self.destination_for(document, contract_id)
        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.initial_delay_seconds, max=MAX_DELAY_SECONDS),
            retry=retry_if_exception_type(_NETWORK_ERRORS),
            before_sleep=before_sleep_log(logger, logging.INFO),
            sleep=self._sleep,
        )
        attempts = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempts += 1
                    size = await asyncio.to_thread(self.client.download_to, document.download_url, destination)
        except requests.HTTPError as exc:
            return self._failed(document, f"HTTP error: {exc}")
        except _NETWORK_ERRORS as exc:
            return self._failed(document, f"Network error after {attempts} attempts: {exc}")
        except (requests.RequestException, OSError) as exc:
            return self._failed(document, f"{type(exc).__name__}: {exc}")

        logger.info("Downloaded %s (%d bytes) to %s", document.file_name, size, destination)
        return document.model_copy(
            update={
                "local_path": str(destination),
                "download_error": None,
                "file_size_bytes": document.file_size_bytes or size,
            }
        )

    def _failed(self, document: RawDocument, reason: str) -> RawDocument:
        logger.warning("Download failed for %s: %s", document.download_url, reason)
        return document.model_copy(update={"local_path": None, "download_error": reason})
