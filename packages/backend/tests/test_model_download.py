"""Tests for acquiring a complete model variant."""

import asyncio

import httpx
import pytest

from core.model_catalog import get_model_urls, get_model_variant
from services.downloader import Downloader
from services.model_download import ModelAcquisition

WEIGHTS = b"w" * 600
TOKENS = b"t" * 400


class ModelHost:
    """Mock model host serving the weights and vocabulary files."""

    def __init__(self, tokens_status: int = 200):
        self.tokens_status = tokens_status
        self.requests: list[str] = []
        self.gate: asyncio.Event | None = None
        self.tokens_stall: asyncio.Event | None = None

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url.path)
        if request.url.path.endswith(".onnx"):
            if self.gate is not None:
                await self.gate.wait()
            return httpx.Response(200, content=WEIGHTS)
        if request.url.path.endswith("tokens.txt"):
            if self.tokens_stall is not None:
                return httpx.Response(self.tokens_status, content=self._stalled_tokens())
            return httpx.Response(self.tokens_status, content=TOKENS)
        return httpx.Response(404)

    async def _stalled_tokens(self):
        yield TOKENS[:100]
        await self.tokens_stall.wait()
        yield TOKENS[100:]


def make_acquisition(store, host: ModelHost) -> ModelAcquisition:
    downloader = Downloader(transport=httpx.MockTransport(host), chunk_size=100)
    return ModelAcquisition(store, downloader)


@pytest.mark.asyncio
async def test_downloads_both_files(store):
    host = ModelHost()
    acquisition = make_acquisition(store, host)
    variant = get_model_variant("int8")

    result = await acquisition.download(variant, get_model_urls("int8"))

    model_path, tokens_path = store.model_paths(variant)
    assert result.success is True
    assert result.model_path == str(model_path)
    assert model_path.read_bytes() == WEIGHTS
    assert tokens_path.read_bytes() == TOKENS
    assert acquisition.is_downloading() is False


@pytest.mark.asyncio
async def test_progress_splits_weights_and_vocabulary(store):
    """Weights cover 0-60%, the vocabulary 60-100%, and bytes accumulate across both."""
    updates = []
    acquisition = make_acquisition(store, ModelHost())
    variant = get_model_variant("int8")

    await acquisition.download(variant, get_model_urls("int8"), updates.append)

    percents = [u.percent for u in updates]
    assert percents == sorted(percents)
    weights_phase = [u for u in updates if u.downloaded_bytes <= len(WEIGHTS)]
    assert weights_phase[-1].percent == pytest.approx(60.0)
    assert percents[-1] == pytest.approx(100.0)
    assert updates[-1].downloaded_bytes == len(WEIGHTS) + len(TOKENS)
    assert all(u.total_bytes == variant.size_bytes for u in updates)
    assert all(u.model_name == variant.name for u in updates)


@pytest.mark.asyncio
async def test_failed_vocabulary_removes_weights(store):
    """Either both files are present afterwards or neither is."""
    acquisition = make_acquisition(store, ModelHost(tokens_status=500))
    variant = get_model_variant("int8")

    result = await acquisition.download(variant, get_model_urls("int8"))

    model_path, tokens_path = store.model_paths(variant)
    assert result.success is False
    assert "HTTP 500" in result.error
    assert not model_path.exists()
    assert not tokens_path.exists()
    assert (await store.status(variant)).exists is False


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_transfer(store):
    host = ModelHost()
    host.gate = asyncio.Event()
    acquisition = make_acquisition(store, host)
    variant = get_model_variant("int8")
    urls = get_model_urls("int8")

    first = asyncio.create_task(acquisition.download(variant, urls))
    second = asyncio.create_task(acquisition.download(variant, urls))
    await asyncio.sleep(0.01)

    assert acquisition.is_downloading() is True
    host.gate.set()
    results = await asyncio.gather(first, second)

    assert all(r.success for r in results)
    assert results[0] is results[1]
    assert sum(path.endswith(".onnx") for path in host.requests) == 1
    assert acquisition.is_downloading() is False


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_abort_shared_transfer(store):
    host = ModelHost()
    host.gate = asyncio.Event()
    acquisition = make_acquisition(store, host)
    variant = get_model_variant("int8")
    urls = get_model_urls("int8")

    impatient = asyncio.create_task(acquisition.download(variant, urls))
    patient = asyncio.create_task(acquisition.download(variant, urls))
    await asyncio.sleep(0.01)
    impatient.cancel()
    host.gate.set()

    result = await patient
    assert result.success is True
    assert impatient.cancelled()


@pytest.mark.asyncio
async def test_retry_after_failure_starts_fresh(store):
    host = ModelHost(tokens_status=503)
    acquisition = make_acquisition(store, host)
    variant = get_model_variant("int8")
    urls = get_model_urls("int8")

    assert (await acquisition.download(variant, urls)).success is False

    host.tokens_status = 200
    assert (await acquisition.download(variant, urls)).success is True
    assert (await store.status(variant)).exists is True


@pytest.mark.asyncio
async def test_cancel_all_mid_vocabulary_leaves_no_files(store):
    """Cancelling while the vocabulary streams removes the finished weights too."""
    host = ModelHost()
    host.tokens_stall = asyncio.Event()
    acquisition = make_acquisition(store, host)
    variant = get_model_variant("int8")
    urls = get_model_urls("int8")
    in_vocabulary = asyncio.Event()

    def on_progress(progress):
        if progress.downloaded_bytes > len(WEIGHTS):
            in_vocabulary.set()

    waiter = asyncio.create_task(acquisition.download(variant, urls, on_progress))
    await asyncio.wait_for(in_vocabulary.wait(), timeout=5)

    await acquisition.cancel_all()
    result = await waiter

    model_path, tokens_path = store.model_paths(variant)
    assert result.success is False
    assert result.error == "Download cancelled"
    assert not model_path.exists()
    assert not tokens_path.exists()
    assert acquisition.is_downloading() is False


@pytest.mark.asyncio
async def test_cancel_all_without_downloads_is_noop(store):
    acquisition = make_acquisition(store, ModelHost())

    await acquisition.cancel_all()

    assert acquisition.is_downloading() is False
