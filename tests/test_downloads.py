from __future__ import annotations

import asyncio
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Iterator

import pytest
import requests

from bidharvest.ingest.downloads import DocumentDownloader, sanitize_file_name
from bidharvest.ingest.http import PoliteHttpClient
from bidharvest.normalize.schema import RawDocument


class ScriptedClient:
    """Replays a list of outcomes; exceptions are raised, ints are byte counts."""

    def __init__(self, outcomes: list[Any]) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[tuple[str, Path]] = []

    def download_to(self, url: str, destination: Path) -> int:
        self.calls.append((url, destination))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(b"x" * outcome)
        return outcome


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _document(file_name: str = "specs.pdf", size: int | None = None) -> RawDocument:
    return RawDocument(
        id="doc-1",
        file_name=file_name,
        download_url="https://www.cherokeebids.org/files/specs.pdf",
        file_size_bytes=size,
        parent_id="www-cherokeebids-org-164192",
    )


def _downloader(client: ScriptedClient, root: Path, sleep: RecordingSleep, max_retries: int = 3) -> DocumentDownloader:
    return DocumentDownloader(client, root, max_retries=max_retries, initial_delay_seconds=0.5, sleep=sleep)  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("specs.pdf", "specs.pdf"),
        ("My Spec: v2?.pdf", "My_Spec_v2.pdf"),
        ("a/b\\c.docx", "a_b_c.docx"),
        ("", "file"),
        ("README", "README"),
    ],
)
def test_sanitize_file_name(raw: str, expected: str) -> None:
    assert sanitize_file_name(raw) == expected


def test_sanitize_file_name_caps_stem_and_keeps_extension() -> None:
    cleaned = sanitize_file_name("x" * 300 + ".pdf")

    assert cleaned.endswith(".pdf")
    assert len(cleaned) == 204


def test_download_saves_under_contract_folder(tmp_path: Path) -> None:
    client = ScriptedClient([12])
    sleep = RecordingSleep()

    result = asyncio.run(_downloader(client, tmp_path, sleep).download(_document(), "www-cherokeebids-org-164192"))

    expected = tmp_path / "www-cherokeebids-org-164192" / "specs.pdf"
    assert result.local_path == str(expected)
    assert result.download_error is None
    assert result.file_size_bytes == 12
    assert expected.read_bytes() == b"x" * 12
    assert sleep.delays == []


def test_download_keeps_listed_size(tmp_path: Path) -> None:
    client = ScriptedClient([12])

    result = asyncio.run(_downloader(client, tmp_path, RecordingSleep()).download(_document(size=2048), "c-1"))

    assert result.file_size_bytes == 2048


def test_download_retries_network_errors_with_doubling_delay(tmp_path: Path) -> None:
    client = ScriptedClient([requests.ConnectionError("reset"), requests.Timeout("slow"), 5])
    sleep = RecordingSleep()

    result = asyncio.run(_downloader(client, tmp_path, sleep).download(_document(), "c-1"))

    assert len(client.calls) == 3
    assert sleep.delays == [0.5, 1.0]
    assert result.local_path is not None
    assert result.download_error is None


def test_download_gives_up_after_retries(tmp_path: Path) -> None:
    client = ScriptedClient([requests.ConnectionError("down")] * 3)
    sleep = RecordingSleep()

    result = asyncio.run(_downloader(client, tmp_path, sleep, max_retries=2).download(_document(), "c-1"))

    assert len(client.calls) == 3
    assert sleep.delays == [0.5, 1.0]
    assert result.local_path is None
    assert result.download_error is not None
    assert "after 3 attempts" in result.download_error


def test_http_error_is_not_retried(tmp_path: Path) -> None:
    client = ScriptedClient([requests.HTTPError("404 Client Error")])
    sleep = RecordingSleep()

    result = asyncio.run(_downloader(client, tmp_path, sleep).download(_document(), "c-1"))

    assert len(client.calls) == 1
    assert sleep.delays == []
    assert result.download_error is not None
    assert result.download_error.startswith("HTTP error")


class FakeResponse:
    def __init__(self, chunks: list[bytes], status_error: Exception | None = None) -> None:
        self.chunks = chunks
        self.status_error = status_error
        self.closed = False

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def raise_for_status(self) -> None:
        if self.status_error is not None:
            raise self.status_error

    def iter_content(self, chunk_size: int) -> list[bytes]:
        return self.chunks

    def close(self) -> None:
        self.closed = True


class FakeSession:
    def __init__(self, response: FakeResponse) -> None:
        self.response = response
        self.requests: list[dict[str, Any]] = []

    def request(self, **kwargs: Any) -> FakeResponse:
        self.requests.append(kwargs)
        return self.response

    def close(self) -> None:
        pass


def test_client_download_to_streams_into_destination(tmp_path: Path) -> None:
    client = PoliteHttpClient(requests_per_second=0)
    session = FakeSession(FakeResponse([b"abc", b"", b"de"]))
    client._download_session = session  # type: ignore[assignment]
    destination = tmp_path / "c-1" / "specs.pdf"

    written = client.download_to("https://example.org/specs.pdf", destination)

    assert written == 5
    assert destination.read_bytes() == b"abcde"
    assert session.requests[0]["stream"] is True
    assert list(destination.parent.glob("*.part")) == []


def test_client_download_to_leaves_nothing_on_http_error(tmp_path: Path) -> None:
    response = FakeResponse([b"abc"], status_error=requests.HTTPError("500 Server Error"))
    client = PoliteHttpClient(requests_per_second=0)
    client._download_session = FakeSession(response)  # type: ignore[assignment]
    destination = tmp_path / "c-1" / "specs.pdf"

    with pytest.raises(requests.HTTPError):
        client.download_to("https://example.org/specs.pdf", destination)

    assert response.closed
    assert not destination.exists()
    assert list(destination.parent.glob("*")) == []


class _DocumentHandler(BaseHTTPRequestHandler):
    hits: list[str] = []

    def do_GET(self) -> None:  # noqa: N802
        self.hits.append(self.path)
        if self.path == "/files/specs.pdf":
            body = b"%PDF-1.4 spec"
            self.send_response(200)
            self.send_header("Content-Type", "application/pdf")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
            return
        self.send_response(503)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        pass


@pytest.fixture
def document_server() -> Iterator[tuple[str, list[str]]]:
    hits: list[str] = []
    handler = type("Handler", (_DocumentHandler,), {"hits": hits})
    server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}", hits
    finally:
        server.shutdown()
        server.server_close()


def _served_document(base_url: str, path: str) -> RawDocument:
    return RawDocument(
        id="doc-1",
        file_name=path.rsplit("/", 1)[-1],
        download_url=f"{base_url}{path}",
        parent_id="www-cherokeebids-org-164192",
    )


def test_error_status_is_requested_once_through_real_client(document_server, tmp_path: Path) -> None:  # noqa: ANN001
    base_url, hits = document_server
    sleep = RecordingSleep()

    with PoliteHttpClient(requests_per_second=0, timeout_seconds=5) as client:
        downloader = DocumentDownloader(client, tmp_path, max_retries=3, initial_delay_seconds=0.5, sleep=sleep)
        result = asyncio.run(downloader.download(_served_document(base_url, "/files/busy.pdf"), "c-1"))

    assert hits == ["/files/busy.pdf"]
    assert sleep.delays == []
    assert result.local_path is None
    assert result.download_error is not None
    assert result.download_error.startswith("HTTP error")
    assert "503" in result.download_error


def test_successful_download_through_real_client(document_server, tmp_path: Path) -> None:  # noqa: ANN001
    base_url, hits = document_server

    with PoliteHttpClient(requests_per_second=0, timeout_seconds=5) as client:
        downloader = DocumentDownloader(client, tmp_path, sleep=RecordingSleep())
        result = asyncio.run(downloader.download(_served_document(base_url, "/files/specs.pdf"), "c-1"))

    assert hits == ["/files/specs.pdf"]
    assert result.download_error is None
    assert Path(result.local_path or "").read_bytes() == b"%PDF-1.4 spec"
    assert result.file_size_bytes == len(b"%PDF-1.4 spec")
