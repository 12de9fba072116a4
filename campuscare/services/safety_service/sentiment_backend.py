"""External sentiment backend with bounded timeout and rule-based fallback.

The backend is an optional enhancement. Any failure (timeout, transport
error, bad status, undecodable body, malformed payload) is recovered here by falling back
to the deterministic analyzer, so classification never blocks on it.
"""
import asyncio
import logging
import time
from typing import Any, Dict, Optional

import aiohttp

from .config import SentimentConfig
from .sentiment import (
    RuleBasedSentimentProvider,
    SentimentLabel,
    SentimentProvider,
    SentimentResult,
)

logger = logging.getLogger(__name__)


class ClassificationBackendError(Exception):
    """External analysis call failed or timed out."""
    pass


class ExternalSentimentProvider(SentimentProvider):
    """Calls an HTTP sentiment endpoint.

    Request:  POST {"text": "..."}
    Response: {"score": -0.6, "magnitude": 0.6, "label": "negative"}
              (magnitude and label are derived from score when absent)
    """

    name = "external"

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 2.0,
        fallback: Optional[SentimentProvider] = None,
    ):
        """Initialize provider.

        Args:
            endpoint: URL of the analysis service
            api_key: Optional bearer token
            timeout_seconds: Upper bound for one analysis call
            fallback: Provider used when the backend fails
        """
        if not endpoint:
            raise ValueError("External sentiment endpoint required")

        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self.fallback = fallback or RuleBasedSentimentProvider()
        self.headers = {"Content-Type": "application/json"}
        if api_key:
            self.headers["Authorization"] = f"Bearer {api_key}"

        logger.info(
            "EXTERNAL_SENTIMENT_CONFIGURED",
            extra={
                "endpoint": endpoint,
                "timeout_seconds": timeout_seconds,
                "fallback": self.fallback.name,
            }
        )

    async def analyze(self, text: str) -> SentimentResult:
        if not text or not text.strip():
            return await self.fallback.analyze(text)

        start_time = time.perf_counter()
        try:
            result = await self._analyze_remote(text)
        except ClassificationBackendError as e:
            logger.warning(
                "SENTIMENT_BACKEND_FALLBACK",
                extra={
                    "error": str(e),
                    "fallback": self.fallback.name,
                    "latency_ms": (time.perf_counter() - start_time) * 1000,
                }
            )
            return await self.fallback.analyze(text)

        logger.debug(
            "SENTIMENT_BACKEND_COMPLETE",
            extra={
                "label": result.label.value,
                "latency_ms": (time.perf_counter() - start_time) * 1000,
            }
        )
        return result

    async def _analyze_remote(self, text: str) -> SentimentResult:
        """Call the backend and parse its answer.

        Raises:
            ClassificationBackendError: On any failure
        """
        try:
            payload = await asyncio.wait_for(
                self._request(text), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            raise ClassificationBackendError(
                f"Sentiment backend timed out after {self.timeout_seconds}s"
            )
        except aiohttp.ClientError as e:
            raise ClassificationBackendError(f"Sentiment backend request failed: {e}")
        except ValueError as e:
            raise ClassificationBackendError(f"Sentiment backend returned malformed JSON: {e}")

        return parse_backend_payload(payload)

    async def _request(self, text: str) -> Dict[str, Any]:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(
                self.endpoint,
                headers=self.headers,
                json={"text": text},
            ) as response:
                response.raise_for_status()
                return await response.json()


def parse_backend_payload(payload: Any) -> SentimentResult:
    """Validate a backend response into a SentimentResult.

    Raises:
        ClassificationBackendError: If the payload is malformed
    """
    if not isinstance(payload, dict) or "score" not in payload:
        raise ClassificationBackendError("Sentiment backend returned no score")

    try:
        score = float(payload["score"])
        magnitude = float(payload.get("magnitude", abs(score)))
        raw_label = payload.get("label")
        if raw_label is None:
            if score > 0.1:
                label = SentimentLabel.POSITIVE
            elif score < -0.1:
                label = SentimentLabel.NEGATIVE
            else:
                label = SentimentLabel.NEUTRAL
        else:
            label = SentimentLabel(str(raw_label).lower())
        return SentimentResult(score=score, magnitude=magnitude, label=label)
    except (TypeError, ValueError) as e:
        raise ClassificationBackendError(f"Malformed sentiment payload: {e}")


def build_sentiment_provider(config: Optional[SentimentConfig] = None) -> SentimentProvider:
    """Choose the sentiment provider from configuration."""
    config = config or SentimentConfig.from_env()
    if config.backend_enabled:
        return ExternalSentimentProvider(
            endpoint=config.backend_url,
            api_key=config.api_key,
            timeout_seconds=config.timeout_seconds,
        )
    logger.info("SENTIMENT_PROVIDER_RULE_BASED")
    return RuleBasedSentimentProvider()
