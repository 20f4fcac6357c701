"""Reasoning service: the LLM boundary of the council pipeline.

The pipeline talks to a ReasoningService protocol; GeminiReasoningService is
the production implementation (google-genai). It supports inline binary
attachments (images / video), Google Search grounding, and JSON-schema
constrained output.

Includes built-in cost tracking: every call records token usage and
calculates cost based on per-model pricing. Use reset_usage(), get_usage_log(),
and get_usage_summary() to access the accumulated data.

Error handling:
  - 400-level errors (bad request, auth) are NOT retried, they won't fix themselves.
  - 429 (rate limit) and 5xx (server errors) ARE retried with exponential backoff.
  - Retries stay inside this module; the pipeline above never retries a stage.
"""

from __future__ import annotations

import json
import logging
import re
import threading
import time as _time
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

import config
from council.errors import ServiceError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Service contract
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Attachment:
    """Binary payload sent alongside a prompt (an image or video)."""

    mime_type: str
    data: bytes


class ReasoningService(Protocol):
    def generate_structured(
        self,
        prompt: str,
        *,
        schema: dict[str, Any],
        attachments: Sequence[Attachment] = (),
        use_search: bool = False,
        stage: str | None = None,
    ) -> Any:
        """Return decoded JSON that should match ``schema``. Raises ServiceError."""
        ...

    def generate_text(self, prompt: str, *, stage: str | None = None) -> str:
        """Return free text. Raises ServiceError."""
        ...


# ---------------------------------------------------------------------------
# Cost tracking
# ---------------------------------------------------------------------------

# Pricing per 1M tokens: { model_prefix: (input_$/1M, output_$/1M) }
# Models are matched longest-prefix-first, so "gemini-2.5-flash" matches before "gemini-2.5".
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "gemini-3-pro":     (2.00,  12.00),
    "gemini-2.5-pro":   (1.25,  10.00),
    "gemini-2.5-flash": (0.15,   0.60),
    "gemini-2.0-flash": (0.10,   0.40),
    "gemini-1.5-pro":   (1.25,   5.00),
    "gemini-1.5-flash": (0.075,  0.30),
}

# Fallback pricing if a model isn't in the table (conservative estimate)
_FALLBACK_PRICING = (2.50, 10.00)

_usage_lock = threading.Lock()
_usage_log: list[dict[str, Any]] = []


def _get_pricing(model: str) -> tuple[float, float]:
    """Find pricing for a model by longest-prefix match."""
    best_match = ""
    for prefix in MODEL_PRICING:
        if model.startswith(prefix) and len(prefix) > len(best_match):
            best_match = prefix
    if best_match:
        return MODEL_PRICING[best_match]
    logger.warning("No pricing found for model '%s', using fallback $%.2f/$%.2f per 1M", model, *_FALLBACK_PRICING)
    return _FALLBACK_PRICING


def _record_usage(stage: str, model: str, input_tokens: int, output_tokens: int):
    """Record a single call's token usage and cost."""
    in_price, out_price = _get_pricing(model)
    cost = (input_tokens * in_price + output_tokens * out_price) / 1_000_000
    entry = {
        "stage": stage,
        "model": model,
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "cost": cost,
        "timestamp": _time.time(),
    }
    with _usage_lock:
        _usage_log.append(entry)
    logger.info(
        "Token usage: %s/%s in=%d out=%d cost=$%.4f",
        stage, model, input_tokens, output_tokens, cost,
    )


def reset_usage():
    """Clear all accumulated usage data (call at run start)."""
    with _usage_lock:
        _usage_log.clear()


def get_usage_log() -> list[dict[str, Any]]:
    """Return a copy of the full usage log."""
    with _usage_lock:
        return list(_usage_log)


def get_usage_summary() -> dict[str, Any]:
    """Return aggregated cost and token totals."""
    with _usage_lock:
        entries = list(_usage_log)
    total_input = sum(e["input_tokens"] for e in entries)
    total_output = sum(e["output_tokens"] for e in entries)
    total_cost = sum(e["cost"] for e in entries)
    return {
        "total_input_tokens": total_input,
        "total_output_tokens": total_output,
        "total_tokens": total_input + total_output,
        "total_cost": round(total_cost, 4),
        "calls": len(entries),
    }


# ---------------------------------------------------------------------------
# Error helpers
# ---------------------------------------------------------------------------

class LLMError(ServiceError):
    """Clean error from a reasoning call with a human-readable message."""

    def __init__(self, message: str, provider: str = "google", model: str = "", cause: Exception | None = None):
        self.provider = provider
        self.model = model
        self.cause = cause
        super().__init__(message)


_RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


def _is_retryable(exc: BaseException) -> bool:
    """Return True if the error is transient and worth retrying.

    We retry on:
      - Rate limits (429)
      - Server errors (5xx)
      - Connection / timeout errors
    We do NOT retry on:
      - 400 Bad Request, 401/403 auth, 404 unknown model
      - Empty or malformed responses (a new prompt would be needed)
    """
    if isinstance(exc, LLMError):
        return False

    try:
        from google.genai import errors as genai_errors
        if isinstance(exc, genai_errors.APIError):
            return getattr(exc, "code", None) in _RETRYABLE_STATUS
    except ImportError:
        pass

    try:
        import httpx
        if isinstance(exc, (httpx.TransportError, httpx.TimeoutException)):
            return True
    except ImportError:
        pass

    return isinstance(exc, (ConnectionError, TimeoutError))


def _extract_error_message(exc: Exception, model: str) -> str:
    """Pull out a clean, human-readable error message from an API exception."""
    msg = str(exc)

    try:
        from google.genai import errors as genai_errors
        if isinstance(exc, genai_errors.APIError):
            code = getattr(exc, "code", None)
            detail = getattr(exc, "message", None) or msg
            if code == 400:
                return f"[google/{model}] Bad request: {detail}"
            if code in (401, 403):
                return "[google] Authentication failed, check your GOOGLE_API_KEY."
            if code == 404:
                return f"[google] Model '{model}' not found. Check COUNCIL_MODEL in config.py or .env."
            if code == 429:
                return f"[google/{model}] Rate limited: {detail}"
            return f"[google/{model}] HTTP {code}: {detail}"
    except ImportError:
        pass

    # Generic fallback: truncate very long messages
    if len(msg) > 300:
        msg = msg[:300] + "..."
    return f"[google/{model}] {msg}"


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------

def _strip_fences(raw: str) -> str:
    cleaned = raw.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```\w*\n?", "", cleaned)
        cleaned = re.sub(r"\n?```\s*$", "", cleaned)
    return cleaned.strip()


def _safe_json_loads(raw: str) -> Any:
    """Parse JSON with fallback repair for common LLM quirks.

    Handles: markdown fences, trailing commas, preamble/postamble around the
    JSON value. Raises json.JSONDecodeError when nothing works.
    """
    cleaned = _strip_fences(raw)

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    # Remove trailing commas before } or ]
    fixed = re.sub(r",\s*([}\]])", r"\1", cleaned)
    try:
        return json.loads(fixed)
    except json.JSONDecodeError:
        pass

    # Find the outermost object or array in the string
    match = re.search(r"(\{.*\}|\[.*\])", cleaned, re.DOTALL)
    if match:
        candidate = re.sub(r",\s*([}\]])", r"\1", match.group(0))
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            pass

    # Give up and raise the original error
    return json.loads(cleaned)


def _schema_instruction(schema: dict[str, Any]) -> str:
    return (
        "\n\nYou MUST respond with valid JSON that conforms to this schema:\n"
        f"```json\n{json.dumps(schema, indent=2)}\n```\n"
        "Respond ONLY with the JSON. No markdown fences, no explanation."
    )


# ---------------------------------------------------------------------------
# Gemini implementation
# ---------------------------------------------------------------------------

class GeminiReasoningService:
    """ReasoningService backed by the Gemini API (google-genai SDK)."""

    def __init__(self, api_key: str | None = None, client: Any = None):
        self._api_key = api_key if api_key is not None else config.GOOGLE_API_KEY
        self._client = client
        self._client_lock = threading.Lock()

    def _get_client(self):
        with self._client_lock:
            if self._client is None:
                if not self._api_key:
                    raise LLMError("GOOGLE_API_KEY is not set. Add it to your .env file.")
                from google import genai
                self._client = genai.Client(api_key=self._api_key)
            return self._client

    def generate_structured(
        self,
        prompt: str,
        *,
        schema: dict[str, Any],
        attachments: Sequence[Attachment] = (),
        use_search: bool = False,
        stage: str | None = None,
    ) -> Any:
        stage = stage or "structured"
        raw = self._call(
            stage=stage,
            prompt=prompt + _schema_instruction(schema),
            attachments=attachments,
            json_schema=schema,
            use_search=use_search,
        )
        try:
            return _safe_json_loads(raw)
        except json.JSONDecodeError:
            # Hand the raw text on; the validator reports it as malformed.
            logger.warning("%s: response is not valid JSON (%d chars)", stage, len(raw))
            return raw

    def generate_text(self, prompt: str, *, stage: str | None = None) -> str:
        return self._call(stage=stage or "text", prompt=prompt)

    def _call(self, *, stage: str, **kwargs: Any) -> str:
        """Retried call; anything still failing surfaces as LLMError."""
        try:
            return self._call_with_retry(stage=stage, **kwargs)
        except LLMError:
            raise
        except Exception as exc:
            model = config.get_stage_llm_config(stage)["model"]
            raise LLMError(
                _extract_error_message(exc, model) + " (retries exhausted)",
                model=model,
                cause=exc,
            ) from exc

    @retry(
        retry=retry_if_exception(_is_retryable),
        stop=stop_after_attempt(max(1, config.LLM_MAX_ATTEMPTS)),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    def _call_with_retry(
        self,
        *,
        stage: str,
        prompt: str,
        attachments: Sequence[Attachment] = (),
        json_schema: Optional[dict[str, Any]] = None,
        use_search: bool = False,
    ) -> str:
        from google.genai import types

        conf = config.get_stage_llm_config(stage)
        model = conf["model"]
        client = self._get_client()

        gen_config = types.GenerateContentConfig(
            temperature=conf["temperature"],
            max_output_tokens=conf["max_tokens"],
        )
        if use_search:
            gen_config.tools = [types.Tool(google_search=types.GoogleSearch())]
        elif json_schema is not None:
            # Search grounding and a JSON mime type don't mix on every model;
            # with search on, the schema instruction in the prompt carries it.
            gen_config.response_mime_type = "application/json"
            gen_config.response_json_schema = json_schema

        contents: list[Any] = [
            types.Part.from_bytes(data=a.data, mime_type=a.mime_type)
            for a in attachments
        ]
        contents.append(prompt)

        logger.info(
            "LLM call: stage=%s model=%s attachments=%d search=%s schema=%s",
            stage, model, len(attachments), use_search,
            (json_schema or {}).get("title", "-"),
        )
        start = _time.time()
        try:
            response = client.models.generate_content(
                model=model,
                contents=contents,
                config=gen_config,
            )
        except Exception as exc:
            clean_msg = _extract_error_message(exc, model)
            logger.error("LLM call failed (%s): %s", stage, clean_msg)
            if _is_retryable(exc):
                raise  # let tenacity retry
            raise LLMError(clean_msg, model=model, cause=exc) from exc

        elapsed = round(_time.time() - start, 1)
        meta = getattr(response, "usage_metadata", None)
        if meta:
            in_tok = getattr(meta, "prompt_token_count", 0) or 0
            out_tok = getattr(meta, "candidates_token_count", 0) or 0
            _record_usage(stage, model, in_tok, out_tok)

        text = (response.text or "").strip()
        logger.info("LLM call: stage=%s complete, %d chars in %.1fs", stage, len(text), elapsed)
        if not text:
            raise LLMError(f"[google/{model}] {stage}: model returned an empty response", model=model)
        return text
