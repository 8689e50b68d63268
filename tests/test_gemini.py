"""Tests for the Gemini enricher (network calls are stubbed)."""

import io
import json
import urllib.error

import pytest

from data.errors import UpstreamServiceError
from narrative.gemini import DEFAULT_MODEL, GeminiEnricher, extract_text

FACTS = {"provider_id": "123", "periods": [2019, 2020], "label": "Watch"}


class FakeResponse(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


def _payload(*texts) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": t} for t in texts]}}]}


def test_extract_text_joins_parts():
    assert extract_text(_payload("Line one.", "Line two.")) == "Line one.\nLine two."


@pytest.mark.parametrize("payload", [{}, {"candidates": []}, {"candidates": [{"content": None}]}])
def test_extract_text_rejects_malformed(payload):
    with pytest.raises(UpstreamServiceError):
        extract_text(payload)


def test_enrich_without_key_fails(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    with pytest.raises(UpstreamServiceError, match="GEMINI_API_KEY"):
        GeminiEnricher().enrich(FACTS)


def test_enrich_reads_env(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "secret")
    monkeypatch.delenv("GEMINI_MODEL", raising=False)
    enricher = GeminiEnricher()
    assert enricher.api_key == "secret"
    assert enricher.model == DEFAULT_MODEL


def test_enrich_posts_prompt(monkeypatch):
    seen = {}

    def fake_urlopen(request, timeout):
        seen["url"] = request.full_url
        seen["key"] = request.get_header("X-goog-api-key")
        seen["body"] = json.loads(request.data)
        seen["timeout"] = timeout
        return FakeResponse(json.dumps(_payload("Executive Brief: Provider 123")).encode())

    monkeypatch.setattr("urllib.request.urlopen", fake_urlopen)
    text = GeminiEnricher(api_key="k", model="test-model", timeout=5).enrich(FACTS, strict=True)

    assert text == "Executive Brief: Provider 123"
    assert seen["url"].endswith("/models/test-model:generateContent")
    assert seen["key"] == "k"
    assert seen["timeout"] == 5
    assert seen["body"]["generationConfig"]["temperature"] == 0.15
    prompt = seen["body"]["contents"][0]["parts"][0]["text"]
    assert prompt.startswith("Rewrite the brief")
    assert '"provider_id": "123"' in prompt


@pytest.mark.parametrize("error", [
    urllib.error.URLError("connection refused"),
    TimeoutError("timed out"),
])
def test_enrich_network_errors(monkeypatch, error):
    def fake_urlopen(request, timeout):
        raise error

    monkeypatch.setattr("urllib.request.urlopen", fake_urlopen)
    with pytest.raises(UpstreamServiceError):
        GeminiEnricher(api_key="k").enrich(FACTS)


def test_enrich_bad_json(monkeypatch):
    monkeypatch.setattr("urllib.request.urlopen", lambda request, timeout: FakeResponse(b"<html>"))
    with pytest.raises(UpstreamServiceError):
        GeminiEnricher(api_key="k").enrich(FACTS)
