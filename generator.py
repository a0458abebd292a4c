"""Gemini text generation for the fan site content."""

import re
import time
import logging
from dataclasses import dataclass
from typing import Callable

import requests
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_incrementing

logger = logging.getLogger(__name__)

GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_TEMPERATURE = 0.7
JSON_MIME_TYPE = "application/json"


class GenerationError(Exception):
    """The provider call failed in a way retrying will not fix."""


class RateLimitError(GenerationError):
    """The provider rejected the call for rate or quota reasons."""


def is_rate_limit_error(exc: BaseException) -> bool:
    return isinstance(exc, RateLimitError)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry: attempt N waits ``backoff_seconds * N`` before retrying."""
    max_retries: int = 3
    backoff_seconds: float = 30.0
    retryable: Callable[[BaseException], bool] = is_rate_limit_error


# ---------------------------------------------------------------------------
# Text post-processing
# ---------------------------------------------------------------------------

_BOLD_RE = re.compile(r"\*\*([^*]+)\*\*")
_EMPHASIS_RE = re.compile(r"\*([^*]+)\*")
_FENCE_RE = re.compile(r"```(?:json|JSON)?")


def convert_emphasis(text: str) -> str:
    """Turn ``*Led Zeppelin IV*`` into ``<i>Led Zeppelin IV</i>``."""
    if not text:
        return ""
    text = _BOLD_RE.sub(r"*\1*", text)
    return _EMPHASIS_RE.sub(r"<i>\1</i>", text)


def strip_emphasis(text: str) -> str:
    if not text:
        return ""
    text = _BOLD_RE.sub(r"\1", text)
    return _EMPHASIS_RE.sub(r"\1", text)


def clean_json_response(text: str) -> str:
    """Strip code fences and any chatter around the JSON payload."""
    text = _FENCE_RE.sub("", text or "").strip()
    start = re.search(r"[\[{]", text)
    if start:
        text = text[start.start():]
    end = max(text.rfind("]"), text.rfind("}"))
    if end != -1:
        text = text[:end + 1]
    return text.strip()


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:500]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return f"{error.get('status', '')} {error.get('message', '')}".strip()
    return resp.text[:500]


def _extract_text(data: dict) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict))


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class TextGenerator:
    """Single-prompt wrapper around the Gemini ``generateContent`` call.

    ``generate`` never raises: a missing key, a persistent rate limit or any
    other provider failure all come back as ``None`` so the caller keeps
    whatever content it already had.
    """

    def __init__(
        self,
        api_key: str | None,
        model: str = DEFAULT_MODEL,
        retry_policy: RetryPolicy | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
        timeout: int = 120,
    ):
        self.api_key = api_key
        self.model = model
        self.retry_policy = retry_policy or RetryPolicy()
        self.session = session or requests.Session()
        self.timeout = timeout
        self._sleep = sleep

    def generate(
        self,
        prompt: str,
        *,
        temperature: float | None = None,
        json_output: bool = False,
        emphasis: str | None = "italic",
        label: str = "",
    ) -> str | None:
        label = label or "prompt"
        if not self.api_key:
            logger.warning("GOOGLE_API_KEY is not set, skipping generation for %s", label)
            return None

        config = {"temperature": DEFAULT_TEMPERATURE if temperature is None else temperature}
        if json_output:
            config["responseMimeType"] = JSON_MIME_TYPE

        policy = self.retry_policy
        retrying = Retrying(
            retry=retry_if_exception(policy.retryable),
            stop=stop_after_attempt(policy.max_retries + 1),
            wait=wait_incrementing(start=policy.backoff_seconds, increment=policy.backoff_seconds),
            sleep=self._sleep,
            before_sleep=lambda state: logger.warning(
                "Rate limited on %s (attempt %d), retrying in %.0fs",
                label, state.attempt_number, state.next_action.sleep,
            ),
            reraise=True,
        )

        try:
            text = retrying(self._request, prompt, config)
        except RateLimitError as e:
            logger.error("Giving up on %s after %d attempts: %s",
                         label, policy.max_retries + 1, e)
            return None
        except GenerationError as e:
            logger.error("Generation failed for %s: %s", label, e)
            return None

        if json_output:
            return clean_json_response(text)
        if emphasis == "italic":
            return convert_emphasis(text).strip()
        if emphasis == "strip":
            return strip_emphasis(text).strip()
        return text.strip()

    def _request(self, prompt: str, config: dict) -> str:
        url = GEMINI_ENDPOINT.format(model=self.model)
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": config,
        }
        try:
            resp = self.session.post(
                url,
                json=payload,
                headers={"x-goog-api-key": self.api_key},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise GenerationError(f"request failed: {e}") from e

        if resp.status_code == 429:
            raise RateLimitError(f"HTTP 429: {_error_message(resp)}")
        if not resp.ok:
            message = _error_message(resp)
            if "quota" in message.lower() or "resource_exhausted" in message.lower():
                raise RateLimitError(f"HTTP {resp.status_code}: {message}")
            raise GenerationError(f"HTTP {resp.status_code}: {message}")

        try:
            data = resp.json()
        except ValueError as e:
            raise GenerationError("response was not JSON") from e

        text = _extract_text(data) if isinstance(data, dict) else ""
        if not text.strip():
            raise GenerationError("empty response")
        return text
