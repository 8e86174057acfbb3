"""
Adapter: qualitative (Layer 3) analysis via an LLM.

Implements QualitativeAnalysisPort against any OpenAI-compatible
chat-completions endpoint (Groq, OpenRouter, OpenAI).

Transport errors, timeouts, HTTP 429 and 5xx are retried with exponential
backoff. When retries run out the adapter raises
QualitativeAnalysisUnavailableError. A reply that is not a JSON object of
the expected shape is not an error: ``analyze`` returns None and the
worker applies the deterministic fallback.
"""

import json
import logging
import re
from typing import Any, Optional

import backoff
import httpx

from marketwatch.domain.anomaly.entities import (
    QualitativeAssessment,
    QualitativeRequest,
    is_finite,
)
from marketwatch.domain.anomaly.errors import QualitativeAnalysisUnavailableError
from marketwatch.domain.anomaly.ports import QualitativeAnalysisPort
from marketwatch.domain.anomaly.risk_scoring import clamp_score
from marketwatch.infrastructure.anomaly.prompt_loader import (
    PromptLoader,
    get_prompt_loader,
)

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_TEXT_FIELDS = ("verdict", "likely_scenario", "short_comment")
_REPLY_FIELDS = {"final_risk_score", *_TEXT_FIELDS}


class _RetryableStatusError(Exception):
    """HTTP status worth another attempt (429, 5xx)."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


def parse_assessment(content: Optional[str]) -> Optional[QualitativeAssessment]:
    """Validate a model reply.

    Accepts a JSON object (optionally wrapped in a markdown code fence)
    with exactly the keys ``final_risk_score`` (an integral number),
    ``verdict``, ``likely_scenario`` and ``short_comment`` (non-empty
    strings). The score is clamped to [0, 100], never rounded.

    Returns:
        The assessment, or None if the reply does not match.
    """
    if not content or not isinstance(content, str):
        return None
    text = _FENCE.sub("", content.strip()).strip()
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if not isinstance(data, dict) or set(data) != _REPLY_FIELDS:
        return None

    score = data.get("final_risk_score")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        return None
    if not is_finite(score) or score != int(score):
        return None
    texts = [data.get(key) for key in _TEXT_FIELDS]
    if not all(isinstance(value, str) and value.strip() for value in texts):
        return None

    verdict, scenario, comment = (value.strip() for value in texts)
    return QualitativeAssessment(
        final_risk_score=clamp_score(score),
        verdict=verdict,
        likely_scenario=scenario,
        short_comment=comment,
    )


class LLMAnalysisAdapter(QualitativeAnalysisPort):
    """Chat-completions implementation of the qualitative analysis port.

    Args:
        base_url: API root up to ``/v1``.
        api_key: Bearer token for the provider.
        model: Model identifier.
        temperature: Sampling temperature.
        max_tokens: Completion token cap.
        timeout: Per-attempt timeout in seconds.
        max_retries: Total attempts before giving up.
        backoff_factor: Multiplier of the exponential wait (0 disables waiting).
        prompt_loader: Prompt source (defaults to the bundled YAML).
        client: Optional pre-built httpx client.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        temperature: float = 0.3,
        max_tokens: int = 300,
        timeout: float = 20.0,
        max_retries: int = 3,
        backoff_factor: float = 1.0,
        prompt_loader: Optional[PromptLoader] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._prompts = prompt_loader or get_prompt_loader()
        self._headers = {"Authorization": f"Bearer {api_key}"}
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._send = backoff.on_exception(
            backoff.expo,
            (httpx.TransportError, _RetryableStatusError),
            max_tries=max_retries,
            factor=backoff_factor,
            logger=logger,
        )(self._post_once)

    def close(self) -> None:
        self._client.close()

    def _post_once(self, payload: dict[str, Any]) -> httpx.Response:
        response = self._client.post(
            "/chat/completions", json=payload, headers=self._headers
        )
        if response.status_code == 429 or response.status_code >= 500:
            raise _RetryableStatusError(response.status_code)
        return response

    def _build_payload(self, request: QualitativeRequest) -> dict[str, Any]:
        return {
            "model": self._model,
            "messages": [
                {"role": "system", "content": self._prompts.get_system_prompt()},
                {"role": "user", "content": self._prompts.get_user_prompt(request)},
            ],
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
            "response_format": {"type": "json_object"},
        }

    def analyze(self, request: QualitativeRequest) -> Optional[QualitativeAssessment]:
        payload = self._build_payload(request)
        try:
            response = self._send(payload)
        except (httpx.TransportError, _RetryableStatusError) as exc:
            raise QualitativeAnalysisUnavailableError(str(exc) or type(exc).__name__) from exc

        if response.is_error:
            raise QualitativeAnalysisUnavailableError(
                f"HTTP {response.status_code} from qualitative service"
            )

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            logger.warning("Unexpected completion envelope for %s", request.symbol)
            return None

        assessment = parse_assessment(content)
        if assessment is None:
            logger.warning("Unusable assessment for %s, falling back", request.symbol)
            logger.debug("Raw reply for %s: %r", request.symbol, content)
        return assessment


class OfflineAnalysisAdapter(QualitativeAnalysisPort):
    """Used when no API key is configured; every job gets the fallback."""

    def analyze(self, request: QualitativeRequest) -> Optional[QualitativeAssessment]:
        logger.debug("Qualitative analysis offline, skipping %s", request.symbol)
        return None
