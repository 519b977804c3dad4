import asyncio

import aiohttp
import pytest

from modbot.classifier.perspective_client import PerspectiveClient
from modbot.datatypes.errors import ClassifierError, ClassifierErrorKind


class FakeResponse:
    def __init__(self, status=200, body=None, json_error=None):
        self.status = status
        self._body = body
        self._json_error = json_error

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def text(self):
        return str(self._body)

    async def json(self, content_type=None):
        if self._json_error is not None:
            raise self._json_error
        return self._body


class FakeSession:
    closed = False

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def post(self, url, params=None, json=None, timeout=None):
        self.requests.append({"url": url, "params": params, "json": json})
        if self.error is not None:
            raise self.error
        return self.response


PERSPECTIVE_BODY = {
    "attributeScores": {
        "TOXICITY": {"summaryScore": {"value": 0.91, "type": "PROBABILITY"}},
        "SEVERE_TOXICITY": {"summaryScore": {"value": 0.12}},
        "INSULT": {"spanScores": []},
    }
}


def test_build_request_asks_for_every_attribute():
    payload = PerspectiveClient.build_request("hello", ["pt", "en"])

    assert payload["comment"] == {"text": "hello"}
    assert set(payload["requestedAttributes"]) == {
        "TOXICITY",
        "SEVERE_TOXICITY",
        "IDENTITY_ATTACK",
        "INSULT",
        "PROFANITY",
        "THREAT",
    }
    assert payload["languages"] == ["pt", "en"]


def test_parse_response_reads_summary_scores():
    scores = PerspectiveClient.parse_response(PERSPECTIVE_BODY)

    assert scores == {"toxicity": {"value": 0.91}, "severe_toxicity": {"value": 0.12}}


def test_parse_response_rejects_missing_attribute_scores():
    with pytest.raises(ClassifierError) as excinfo:
        PerspectiveClient.parse_response({"error": "nope"})

    assert excinfo.value.kind is ClassifierErrorKind.BAD_RESPONSE


@pytest.mark.asyncio
async def test_classify_posts_with_key_and_default_languages():
    session = FakeSession(FakeResponse(body=PERSPECTIVE_BODY))
    client = PerspectiveClient("secret", session=session)

    scores = await client.classify("você é horrível")

    request = session.requests[0]
    assert request["params"] == {"key": "secret"}
    assert request["json"]["languages"] == ["pt", "en"]
    assert scores["toxicity"] == {"value": 0.91}


@pytest.mark.asyncio
async def test_missing_key_is_a_network_error():
    client = PerspectiveClient(None, session=FakeSession())

    assert client.configured is False
    with pytest.raises(ClassifierError) as excinfo:
        await client.classify("text")
    assert excinfo.value.kind is ClassifierErrorKind.NETWORK


@pytest.mark.asyncio
async def test_non_2xx_is_a_bad_response():
    client = PerspectiveClient("k", session=FakeSession(FakeResponse(status=429, body="quota")))

    with pytest.raises(ClassifierError) as excinfo:
        await client.classify("text")

    assert excinfo.value.kind is ClassifierErrorKind.BAD_RESPONSE
    assert excinfo.value.status == 429


@pytest.mark.asyncio
async def test_invalid_json_is_a_bad_response():
    client = PerspectiveClient("k", session=FakeSession(FakeResponse(json_error=ValueError("bad json"))))

    with pytest.raises(ClassifierError) as excinfo:
        await client.classify("text")

    assert excinfo.value.kind is ClassifierErrorKind.BAD_RESPONSE


@pytest.mark.asyncio
async def test_timeout_is_mapped():
    client = PerspectiveClient("k", session=FakeSession(error=asyncio.TimeoutError()))

    with pytest.raises(ClassifierError) as excinfo:
        await client.classify("text")

    assert excinfo.value.kind is ClassifierErrorKind.TIMEOUT


@pytest.mark.asyncio
async def test_connection_error_is_a_network_error():
    client = PerspectiveClient("k", session=FakeSession(error=aiohttp.ClientConnectionError("refused")))

    with pytest.raises(ClassifierError) as excinfo:
        await client.classify("text")

    assert excinfo.value.kind is ClassifierErrorKind.NETWORK


@pytest.mark.asyncio
async def test_close_leaves_injected_session_alone():
    session = FakeSession()
    client = PerspectiveClient("k", session=session)

    await client.close()

    assert session.closed is False
