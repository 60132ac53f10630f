"""
Tests for the Wavespeed edit client (polling with a fake HTTP session)
"""

import pytest

from src.core.exceptions import ConfigurationError, GenerationError
from src.services.wavespeed_service import WavespeedService, extract_output_url


class FakeResponse:
    def __init__(self, status, payload):
        self.status = status
        self._payload = payload

    async def json(self):
        return self._payload

    async def text(self):
        return str(self._payload)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Returns the queued poll responses in order"""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = 0

    def get(self, url, headers=None):
        self.calls += 1
        return self.responses.pop(0)


def make_service(attempts=5) -> WavespeedService:
    return WavespeedService(api_key="ws-test", max_poll_attempts=attempts, poll_interval=0)


def test_extract_output_url_variants():
    assert extract_output_url({"outputs": ["https://x/1.png"]}) == "https://x/1.png"
    assert extract_output_url({"outputs": [{"url": "https://x/2.png"}]}) == "https://x/2.png"
    assert extract_output_url({"outputs": [{"image_url": "https://x/3.png"}]}) == "https://x/3.png"
    assert extract_output_url({"image_url": "https://x/4.png"}) == "https://x/4.png"
    assert extract_output_url({}) is None


@pytest.mark.asyncio
async def test_poll_until_completed():
    session = FakeSession([
        FakeResponse(200, {"data": {"status": "processing"}}),
        FakeResponse(503, {}),
        FakeResponse(200, {"data": {"status": "completed", "outputs": ["https://x/out.png"]}}),
    ])

    result = await make_service()._poll(session, "https://api.example.com/result")

    assert result == "https://x/out.png"
    assert session.calls == 3


@pytest.mark.asyncio
async def test_poll_failed_status():
    session = FakeSession([FakeResponse(200, {"data": {"status": "failed", "error": "content rejected"}})])

    with pytest.raises(GenerationError) as exc_info:
        await make_service()._poll(session, "https://api.example.com/result")

    assert exc_info.value.message == "content rejected"


@pytest.mark.asyncio
async def test_poll_completed_without_output():
    session = FakeSession([FakeResponse(200, {"status": "succeeded", "outputs": []})])

    with pytest.raises(GenerationError):
        await make_service()._poll(session, "https://api.example.com/result")


@pytest.mark.asyncio
async def test_poll_times_out():
    session = FakeSession([FakeResponse(200, {"data": {"status": "processing"}}) for _ in range(2)])

    with pytest.raises(GenerationError) as exc_info:
        await make_service(attempts=2)._poll(session, "https://api.example.com/result")

    assert exc_info.value.message == "Wavespeed generation timed out"


@pytest.mark.asyncio
async def test_missing_key_is_configuration_error():
    service = WavespeedService(api_key="")

    assert service.is_configured is False
    with pytest.raises(ConfigurationError):
        await service.edit_image("https://x/in.png", "beach")
