"""Tests for the classification providers."""

import json

import httpx
import pytest

from conftest import make_settings
from trendwire.trender.classifier import (
    ClassifierFactory,
    ClassifierResponseError,
    ClassifierTimeoutError,
    ClassifierUnavailableError,
    NoLLMClassifier,
    OpenAIChatClassifier,
)
from trendwire.trender.keywords import derive_document_keyword


def chat_response(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def make_classifier(handler, max_retries=1):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenAIChatClassifier(api_key="sk-test", model="test-model", base_url="https://llm.test/v1",
                                http_client=http_client, max_retries=max_retries)


class TestOpenAIChatClassifier:

    @pytest.mark.asyncio
    async def test_successful_call(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=chat_response('  {"terms": ["storm"]}  '))

        classifier = make_classifier(handler)
        answer = await classifier.classify("instructie", "payload", response_schema={"title": "Terms"})

        assert answer == '{"terms": ["storm"]}'
        assert seen["path"] == "/v1/chat/completions"
        assert seen["body"]["model"] == "test-model"
        assert seen["body"]["messages"][0] == {"role": "system", "content": "instructie"}
        assert seen["body"]["response_format"]["type"] == "json_schema"
        assert classifier.call_count == 1

    @pytest.mark.asyncio
    async def test_no_schema_no_response_format(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json=chat_response("storm"))

        await make_classifier(handler).classify("instructie", "payload")
        assert "response_format" not in bodies[0]

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        classifier = make_classifier(lambda request: httpx.Response(500, text="oops"))
        with pytest.raises(ClassifierResponseError):
            await classifier.classify("i", "p")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{"choices": []}, {"error": "x"}, chat_response("   ")])
    async def test_malformed_body(self, payload):
        classifier = make_classifier(lambda request: httpx.Response(200, json=payload))
        with pytest.raises(ClassifierResponseError):
            await classifier.classify("i", "p")

    @pytest.mark.asyncio
    async def test_invalid_json_body(self):
        classifier = make_classifier(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ClassifierResponseError):
            await classifier.classify("i", "p")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("headers", [{}, {"content-type": "application/json"}])
    async def test_undecodable_body(self, headers):
        classifier = make_classifier(
            lambda request: httpx.Response(200, content=b"\x80\x81 not utf8", headers=headers)
        )
        with pytest.raises(ClassifierResponseError):
            await classifier.classify("i", "p")

    @pytest.mark.asyncio
    async def test_undecodable_body_yields_no_keyword(self):
        classifier = make_classifier(
            lambda request: httpx.Response(200, content=b"\x80\x81 not utf8",
                                           headers={"content-type": "application/json"})
        )
        assert await derive_document_keyword(classifier, "Zware storm", "Veel schade") is None

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ClassifierTimeoutError):
            await make_classifier(handler).classify("i", "p")

    @pytest.mark.asyncio
    async def test_connection_errors_are_retried(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json=chat_response("storm"))

        answer = await make_classifier(handler, max_retries=2).classify("i", "p")

        assert answer == "storm"
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_unreachable_after_retries(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ClassifierUnavailableError):
            await make_classifier(handler, max_retries=1).classify("i", "p")


class TestNoLLMClassifier:

    @pytest.mark.asyncio
    async def test_always_unavailable(self):
        with pytest.raises(ClassifierUnavailableError):
            await NoLLMClassifier().classify("i", "p")

    @pytest.mark.asyncio
    async def test_health_check(self):
        health = await NoLLMClassifier().health_check()
        assert health["status"] == "unavailable"


class TestClassifierFactory:

    def test_without_api_key(self):
        assert isinstance(ClassifierFactory.create(make_settings(llm_api_key="")), NoLLMClassifier)

    @pytest.mark.asyncio
    async def test_with_api_key(self):
        classifier = ClassifierFactory.create(make_settings(llm_api_key="sk-test", llm_model="m"))
        try:
            assert isinstance(classifier, OpenAIChatClassifier)
            assert classifier.provider_name == "OpenAI:m"
        finally:
            await classifier.aclose()
