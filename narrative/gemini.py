import json
import os
import urllib.request

from data.errors import UpstreamServiceError
from narrative.brief import build_prompt

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
DEFAULT_MODEL = "gemini-2.5-flash"


class GeminiEnricher:
    """NarrativeEnricher backed by the Gemini generateContent REST endpoint.

    The API key and model come from GEMINI_API_KEY and GEMINI_MODEL unless
    passed explicitly.
    """

    def __init__(self, api_key: str | None = None, model: str | None = None,
                 timeout: float = 30.0, temperature: float = 0.15, max_output_tokens: int = 700):
        self.api_key = api_key if api_key is not None else os.environ.get("GEMINI_API_KEY", "")
        self.model = model or os.environ.get("GEMINI_MODEL", DEFAULT_MODEL)
        self.timeout = timeout
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    def enrich(self, facts: dict, strict: bool = False) -> str:
        if not self.api_key:
            raise UpstreamServiceError("GEMINI_API_KEY is not set")

        body = json.dumps({
            "contents": [{"role": "user", "parts": [{"text": build_prompt(facts, strict=strict)}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
            },
        }).encode("utf-8")
        request = urllib.request.Request(
            GEMINI_API_URL.format(model=self.model),
            data=body,
            headers={"Content-Type": "application/json", "x-goog-api-key": self.api_key},
            method="POST",
        )

        # HTTPError, URLError and socket timeouts are all OSError; bad JSON is ValueError
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as resp:
                payload = json.loads(resp.read())
        except (OSError, ValueError) as e:
            raise UpstreamServiceError(f"Gemini request failed: {e}") from e

        return extract_text(payload)


def extract_text(payload: dict) -> str:
    """Join the text parts of the first candidate in a generateContent response."""
    try:
        parts = payload["candidates"][0]["content"].get("parts", [])
        return "\n".join(p["text"] for p in parts if p.get("text")).strip()
    except (KeyError, IndexError, TypeError, AttributeError) as e:
        raise UpstreamServiceError(f"Unexpected Gemini response shape: {e}") from e
