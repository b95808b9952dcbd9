import os

import pytest
from telethon.tl import types

from tgfetch.downloader import ResilientDownloader, is_connection_error
from tgfetch.errors import DownloadFailed, EmptyMediaPayload, UnsupportedMediaType

from conftest import Step, make_message, photo_message


def _downloader(client, **kwargs):
    kwargs.setdefault("retry_delay", 0)
    kwargs.setdefault("progress_sink", lambda line: None)
    return ResilientDownloader(client, **kwargs)


@pytest.mark.parametrize(
    "err, expected",
    [
        (ConnectionError("boom"), True),
        (TimeoutError(), True),
        (RuntimeError("Server closed the connection"), True),
        (RuntimeError("Request timeout"), True),
        (RuntimeError("read ECONNRESET"), True),
        (RuntimeError("Client disconnected"), True),
        (ValueError("FILE_REFERENCE_EXPIRED"), False),
        (PermissionError("denied"), False),
    ],
)
def test_is_connection_error(err, expected):
    assert is_connection_error(err) is expected


@pytest.mark.asyncio
async def test_retries_connection_errors_then_succeeds(client, tmp_path):
    out = str(tmp_path / "media.jpg")
    client.download_script = [
        Step(error=ConnectionError("connection reset")),
        Step(error=RuntimeError("timeout while reading")),
        Step(data=b"abc"),
    ]

    path = await _downloader(client).download(photo_message(), out)

    assert path == out
    assert client.download_calls == 3
    with open(out, "rb") as file:
        assert file.read() == b"abc"


@pytest.mark.asyncio
async def test_other_errors_propagate_unchanged(client, tmp_path):
    err = ValueError("FILE_REFERENCE_EXPIRED")
    client.download_script = [Step(error=err), Step(data=b"never")]

    with pytest.raises(ValueError) as exc:
        await _downloader(client).download(photo_message(), str(tmp_path / "x.jpg"))

    assert exc.value is err
    assert client.download_calls == 1


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(client, tmp_path):
    client.download_script = [Step(error=ConnectionError("lost")) for _ in range(3)]

    with pytest.raises(DownloadFailed, match="3 attempts"):
        await _downloader(client, max_attempts=3).download(photo_message(), str(tmp_path / "x.jpg"))

    assert client.download_calls == 3


@pytest.mark.asyncio
async def test_reconnects_when_client_disconnected(client, tmp_path):
    calls = []

    async def reconnect():
        calls.append(True)
        client.connected = True
        return True

    client.download_script = [
        Step(error=ConnectionError("disconnected"), disconnect=True),
        Step(data=b"ok"),
    ]

    await _downloader(client, reconnect=reconnect).download(photo_message(), str(tmp_path / "x.jpg"))

    assert calls == [True]


@pytest.mark.asyncio
async def test_default_reconnect_uses_client(client, tmp_path):
    client.download_script = [
        Step(error=ConnectionError("disconnected"), disconnect=True),
        Step(data=b"ok"),
    ]

    await _downloader(client).download(photo_message(), str(tmp_path / "x.jpg"))

    assert client.connect_calls == 1


@pytest.mark.asyncio
async def test_empty_result_is_deleted(client, tmp_path):
    out = tmp_path / "empty.jpg"
    client.download_script = [Step()]

    with pytest.raises(EmptyMediaPayload):
        await _downloader(client).download(photo_message(), str(out))

    assert not out.exists()


@pytest.mark.asyncio
async def test_partial_file_is_kept_after_failure(client, tmp_path):
    out = tmp_path / "partial.mp4"
    client.download_script = [
        Step(data=b"half", error=ConnectionError("connection lost")),
        Step(data=b"more", error=ConnectionError("connection lost")),
    ]

    with pytest.raises(DownloadFailed):
        await _downloader(client, max_attempts=2).download(photo_message(), str(out))

    assert out.read_bytes() == b"more"


@pytest.mark.asyncio
async def test_partial_file_kept_on_non_retryable_error(client, tmp_path):
    out = tmp_path / "partial.mp4"
    client.download_script = [Step(data=b"half", error=PermissionError("denied"))]

    with pytest.raises(PermissionError):
        await _downloader(client).download(photo_message(), str(out))

    assert out.exists()


@pytest.mark.asyncio
async def test_bytes_result_is_written(client, tmp_path):
    out = tmp_path / "mem.jpg"

    async def download_media(message, file=None, progress_callback=None):
        return b"in-memory"

    client.download_media = download_media

    await _downloader(client).download(photo_message(), str(out))

    assert out.read_bytes() == b"in-memory"


@pytest.mark.asyncio
async def test_missing_output_is_download_failed(client, tmp_path):
    async def download_media(message, file=None, progress_callback=None):
        return None

    client.download_media = download_media

    with pytest.raises(DownloadFailed, match="not created"):
        await _downloader(client).download(photo_message(), str(tmp_path / "none.jpg"))


@pytest.mark.asyncio
async def test_unsupported_media_fails_before_transfer(client, tmp_path):
    message = make_message(media=types.MessageMediaUnsupported())

    with pytest.raises(UnsupportedMediaType):
        await _downloader(client).download(message, str(tmp_path / "x"))

    assert client.download_calls == 0


@pytest.mark.asyncio
async def test_creates_output_directory(client, tmp_path):
    out = tmp_path / "nested" / "dir" / "a.jpg"
    client.download_script = [Step(data=b"x")]

    await _downloader(client).download(photo_message(), str(out))

    assert os.path.getsize(out) == 1


@pytest.mark.asyncio
async def test_cleanup_failure_keeps_original_error(client, tmp_path, monkeypatch):
    out = tmp_path / "empty.jpg"
    client.download_script = [Step()]

    def refuse(path):
        raise PermissionError(f"cannot remove {path}")

    monkeypatch.setattr(os, "remove", refuse)

    with pytest.raises(EmptyMediaPayload):
        await _downloader(client).download(photo_message(), str(out))

    assert out.exists()
