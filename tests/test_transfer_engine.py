import asyncio
import pathlib
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from lms_storage.core.config import MIB
from lms_storage.core.constants import AssetClass, TransferState
from lms_storage.core.errors import ChunkUploadFailed, CommitFailed, SizeLimitExceeded, TransferFailed
from lms_storage.integrations.adapters.s3 import S3BackendAdapter
from lms_storage.models.uploads import ChunkSetCredential, CommitAck, FileSource, SingleShotCredential
from lms_storage.services.transfer_engine import TransferAttempt, TransferEngine

pytestmark = pytest.mark.anyio

KEY = "LMS_Uploads/acme-101/videos/01_v1_clip.mp4"
EXPIRES = datetime.now(UTC) + timedelta(hours=1)


class FakeSigner:
    def __init__(self, chunk_size: int = 4 * MIB, commit_ok: bool = True) -> None:
        self.chunk_size = chunk_size
        self.commit_ok = commit_ok
        self.calls: list[str] = []

    async def sign_single_shot(self, key, source):
        self.calls.append("sign")
        return SingleShotCredential(
            target_url=f"https://minio.test/lms-content/{key}?X-Amz-Signature=s",
            expires_at=EXPIRES,
            required_headers={"Content-Type": source.content_type},
            key=key,
        )

    async def initiate_chunked(self, key, source):
        self.calls.append("initiate")
        total = -(-source.size // self.chunk_size)
        return ChunkSetCredential(
            session_id="upload-1-abc",
            chunk_urls=[f"https://minio.test/lms-content/{key}?partNumber={n + 1}" for n in range(total)],
            chunk_size=self.chunk_size,
            total_chunks=total,
            expires_at=EXPIRES,
            key=key,
        )

    async def commit(self, session_id):
        self.calls.append(f"commit:{session_id}")
        return CommitAck(ok=self.commit_ok, message="done" if self.commit_ok else "")


def sparse_source(tmp_path, size: int, name: str = "clip.mp4", content_type: str = "video/mp4") -> FileSource:
    path = tmp_path / name
    with path.open("wb") as fh:
        fh.truncate(size)
    return FileSource.from_path(path, content_type)


def make_engine(s3_settings, handler, signer=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    engine = TransferEngine(
        client,
        S3BackendAdapter(s3_settings),
        signer or FakeSigner(),
        max_single_shot_bytes=s3_settings.storage_max_file_size,
    )
    return client, engine


def ok_handler(requests: list):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200)

    return handler


async def test_sixty_mib_document_fails_size_check(s3_settings, tmp_path):
    requests: list = []
    client, engine = make_engine(s3_settings, ok_handler(requests))
    source = sparse_source(tmp_path, 60 * MIB, "big.pdf", "application/pdf")
    async with client:
        with pytest.raises(SizeLimitExceeded):
            await engine.transfer(source, KEY, AssetClass.DOCUMENT)
    assert requests == []
    assert engine.signer.calls == []


async def test_sixty_mib_video_goes_chunked(s3_settings, tmp_path):
    requests: list = []
    client, engine = make_engine(s3_settings, ok_handler(requests))
    async with client:
        attempt = await engine.transfer(sparse_source(tmp_path, 60 * MIB), KEY, AssetClass.VIDEO)
    assert attempt.history == [
        TransferState.IDLE,
        TransferState.SIZE_CHECK,
        TransferState.CHUNKED,
        TransferState.COMMIT,
        TransferState.DONE,
    ]
    assert len(requests) == 15
    assert engine.signer.calls == ["initiate", "commit:upload-1-abc"]


def test_strategy_choice(s3_settings):
    engine = TransferEngine(None, S3BackendAdapter(s3_settings), FakeSigner(), max_single_shot_bytes=50 * MIB)
    assert engine.choose_strategy(50 * MIB, AssetClass.VIDEO) is TransferState.SINGLE_SHOT
    assert engine.choose_strategy(50 * MIB + 1, AssetClass.VIDEO) is TransferState.CHUNKED
    assert engine.choose_strategy(2 * MIB, AssetClass.THUMBNAIL) is TransferState.SINGLE_SHOT
    with pytest.raises(SizeLimitExceeded):
        engine.check_size(50 * MIB + 1, AssetClass.THUMBNAIL)
    engine.check_size(50 * MIB, AssetClass.IMAGE)


async def test_chunks_cover_the_file_with_content_ranges(s3_settings):
    requests: list = []
    client, engine = make_engine(s3_settings, ok_handler(requests))
    data = bytes(range(256)) * (40 * 1024)  # 10 MiB
    source = FileSource.from_bytes("clip.mp4", data, "video/mp4")
    credential = await engine.signer.initiate_chunked(KEY, source)
    assert credential.total_chunks == 3

    attempt = TransferAttempt(key=KEY, size=source.size, asset_class=AssetClass.VIDEO)
    async with client:
        await engine.send_chunks(source, credential, attempt)

    assert [r.headers["Content-Range"] for r in requests] == [
        f"bytes 0-{4 * MIB - 1}/{10 * MIB}",
        f"bytes {4 * MIB}-{8 * MIB - 1}/{10 * MIB}",
        f"bytes {8 * MIB}-{10 * MIB - 1}/{10 * MIB}",
    ]
    assert [len(r.content) for r in requests] == [4 * MIB, 4 * MIB, 2 * MIB]
    assert b"".join(r.content for r in requests) == data
    assert all(r.method == "PUT" for r in requests)
    assert attempt.chunks_completed == 3


async def test_chunks_are_sent_strictly_in_order(s3_settings, tmp_path):
    events: list[tuple[str, int]] = []
    in_flight = 0
    max_in_flight = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal in_flight, max_in_flight
        index = int(request.url.params["partNumber"]) - 1
        in_flight += 1
        max_in_flight = max(max_in_flight, in_flight)
        events.append(("start", index))
        await asyncio.sleep(0.001 * (5 - index % 5))
        events.append(("end", index))
        in_flight -= 1
        return httpx.Response(200)

    client, engine = make_engine(s3_settings, handler)
    async with client:
        await engine.transfer(sparse_source(tmp_path, 70 * MIB), KEY, AssetClass.VIDEO)

    assert max_in_flight == 1
    expected = []
    for index in range(18):
        expected += [("start", index), ("end", index)]
    assert events == expected


async def test_failing_chunk_stops_the_transfer(s3_settings, tmp_path):
    requests: list = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.params["partNumber"] == "2":
            return httpx.Response(
                403,
                text="<Error><Code>AccessDenied</Code><Message>Request has expired</Message></Error>",
            )
        return httpx.Response(200)

    signer = FakeSigner()
    client, engine = make_engine(s3_settings, handler, signer)
    async with client:
        with pytest.raises(ChunkUploadFailed) as info:
            await engine.transfer(sparse_source(tmp_path, 51 * MIB), KEY, AssetClass.VIDEO)

    assert info.value.chunk_index == 1
    assert info.value.status_code == 403
    assert "AccessDenied: Request has expired" in info.value.message
    assert len(requests) == 2
    assert signer.calls == ["initiate"]


async def test_missing_chunk_url_fails_with_index(s3_settings, tmp_path):
    class ShortSigner(FakeSigner):
        async def initiate_chunked(self, key, source):
            credential = await super().initiate_chunked(key, source)
            return ChunkSetCredential(
                session_id=credential.session_id,
                chunk_urls=credential.chunk_urls[:-1],
                chunk_size=credential.chunk_size,
                total_chunks=credential.total_chunks,
                expires_at=credential.expires_at,
                key=key,
            )

    requests: list = []
    client, engine = make_engine(s3_settings, ok_handler(requests), ShortSigner())
    async with client:
        with pytest.raises(ChunkUploadFailed) as info:
            await engine.transfer(sparse_source(tmp_path, 52 * MIB), KEY, AssetClass.VIDEO)
    assert info.value.chunk_index == 12
    assert len(requests) == 12


async def test_network_error_on_chunk_is_chunk_failure(s3_settings, tmp_path):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("stalled", request=request)

    client, engine = make_engine(s3_settings, handler)
    async with client:
        with pytest.raises(ChunkUploadFailed) as info:
            await engine.transfer(sparse_source(tmp_path, 51 * MIB), KEY, AssetClass.VIDEO)
    assert info.value.chunk_index == 0


async def test_unacknowledged_commit_fails(s3_settings, tmp_path):
    client, engine = make_engine(s3_settings, ok_handler([]), FakeSigner(commit_ok=False))
    async with client:
        with pytest.raises(CommitFailed):
            await engine.transfer(sparse_source(tmp_path, 51 * MIB), KEY, AssetClass.VIDEO)


async def test_chunked_progress_counts_chunks(s3_settings, tmp_path):
    events = []
    client, engine = make_engine(s3_settings, ok_handler([]))
    async with client:
        await engine.transfer(sparse_source(tmp_path, 51 * MIB), KEY, AssetClass.VIDEO, events.append)
    assert [(e.loaded, e.total) for e in events] == [(n, 13) for n in range(14)]
    assert events[-1].percent == 100


async def test_single_shot_streams_body_and_reports_bytes(s3_settings):
    requests: list = []
    client, engine = make_engine(s3_settings, ok_handler(requests))
    data = b"x" * (200 * 1024)
    events = []
    async with client:
        attempt = await engine.transfer(
            FileSource.from_bytes("cover.png", data, "image/png"), KEY, AssetClass.THUMBNAIL, events.append
        )

    assert attempt.history[-2:] == [TransferState.SINGLE_SHOT, TransferState.DONE]
    (request,) = requests
    assert request.method == "PUT"
    assert request.content == data
    assert request.headers["Content-Type"] == "image/png"
    assert request.headers["Content-Length"] == str(len(data))
    assert "Transfer-Encoding" not in request.headers
    assert "Content-Range" not in request.headers
    loaded = [e.loaded for e in events]
    assert loaded[0] == 0 and loaded[-1] == len(data)
    assert loaded == sorted(loaded)
    assert 64 * 1024 in loaded


async def test_single_shot_failure_is_transfer_failed(s3_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    client, engine = make_engine(s3_settings, handler)
    async with client:
        with pytest.raises(TransferFailed) as info:
            await engine.transfer(FileSource.from_bytes("a.pdf", b"%PDF"), KEY, AssetClass.DOCUMENT)
    assert not isinstance(info.value, ChunkUploadFailed)
    assert info.value.status_code == 500


@pytest.mark.parametrize("size, asset_class", [(MIB, AssetClass.IMAGE), (51 * MIB, AssetClass.VIDEO)])
async def test_file_is_opened_once_per_transfer(s3_settings, tmp_path, monkeypatch, size, asset_class):
    source = sparse_source(tmp_path, size)
    opened = []
    real_open = pathlib.Path.open

    def counting_open(self, *args, **kwargs):
        opened.append(self)
        return real_open(self, *args, **kwargs)

    monkeypatch.setattr(pathlib.Path, "open", counting_open)
    requests: list = []
    client, engine = make_engine(s3_settings, ok_handler(requests))
    async with client:
        await engine.transfer(source, KEY, asset_class)

    assert opened == [source.path]
    assert sum(len(r.content) for r in requests) == size
