"""Tests for the attachment download helper."""

from unittest.mock import MagicMock

import pytest
import requests

from zeppelin.util import download


@pytest.fixture(autouse=True)
def no_retry_delay(monkeypatch):
    monkeypatch.setattr(download, "RETRY_DELAY_SECONDS", 0)


def fake_response(chunks):
    response = MagicMock()
    response.raise_for_status = MagicMock()
    response.iter_content = MagicMock(return_value=iter(chunks))
    return response


@pytest.mark.asyncio
async def test_download_writes_temp_file(monkeypatch):
    get = MagicMock(return_value=fake_response([b"hello ", b"world"]))
    monkeypatch.setattr(download.requests, "get", get)

    downloaded = await download.download_file("https://cdn.example/file.png")

    assert downloaded.path.read_bytes() == b"hello world"
    get.assert_called_once_with("https://cdn.example/file.png", timeout=download.DOWNLOAD_TIMEOUT_SECONDS, stream=True)

    downloaded.delete_fn()
    assert not downloaded.path.exists()


@pytest.mark.asyncio
async def test_download_retries_then_succeeds(monkeypatch):
    get = MagicMock(side_effect=[requests.ConnectionError("reset"), fake_response([b"ok"])])
    monkeypatch.setattr(download.requests, "get", get)

    downloaded = await download.download_file("https://cdn.example/file.png", tries=3)

    assert get.call_count == 2
    assert downloaded.path.read_bytes() == b"ok"
    downloaded.delete_fn()


@pytest.mark.asyncio
async def test_download_gives_up_after_all_tries(monkeypatch):
    get = MagicMock(side_effect=requests.ConnectionError("reset"))
    monkeypatch.setattr(download.requests, "get", get)

    with pytest.raises(requests.RequestException):
        await download.download_file("https://cdn.example/file.png", tries=2)
    assert get.call_count == 2
