"""
Client for the Google Perspective comment analyzer.

classify() returns scores keyed by snake_case attribute name in the
``{attribute: {"value": float}}`` shape the ScoreNormalizer consumes. Every
failure surfaces as a ClassifierError so the orchestrator can fail open.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional, Sequence

import aiohttp
from aiohttp import ClientSession, client_exceptions

from modbot.configuration.moderation_settings import PERSPECTIVE_API_URL
from modbot.datatypes.errors import ClassifierError, ClassifierErrorKind
from modbot.datatypes.moderation_datatypes import TOXICITY_ATTRIBUTES
from modbot.util.logger import get_logger

logger = get_logger("perspective_client")

DEFAULT_LANGUAGES = ("pt", "en")


class PerspectiveClient:
    """
    Async Perspective API client over a shared aiohttp session.

    Attributes:
        api_key: Perspective API key; the client is unusable without one.
        url: comments:analyze endpoint.
        timeout_seconds: Total time budget of one call.
        languages: Language hints used when a call supplies none.
    """

    def __init__(
        self,
        api_key: Optional[str],
        url: str = PERSPECTIVE_API_URL,
        timeout_seconds: float = 10.0,
        languages: Sequence[str] = DEFAULT_LANGUAGES,
        session: Optional[ClientSession] = None,
    ) -> None:
        self.api_key = api_key
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.languages = list(languages)
        self._session = session
        self._owns_session = session is None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _get_session(self) -> ClientSession:
        if self._session is None or self._session.closed:
            self._session = ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout_seconds))
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
            logger.info("[CLASSIFIER] HTTP session closed")
        self._session = None

    @staticmethod
    def build_request(text: str, languages: Sequence[str]) -> Dict[str, Any]:
        return {
            "comment": {"text": text},
            "requestedAttributes": {name.upper(): {} for name in TOXICITY_ATTRIBUTES},
            "languages": list(languages),
        }

    @staticmethod
    def parse_response(body: Any) -> Dict[str, Dict[str, float]]:
        """
        Extract ``summaryScore.value`` per attribute from a Perspective response.

        Raises:
            ClassifierError: BAD_RESPONSE if the body has no attributeScores object.
        """
        if not isinstance(body, dict) or not isinstance(body.get("attributeScores"), dict):
            raise ClassifierError(ClassifierErrorKind.BAD_RESPONSE, "response has no attributeScores")

        scores: Dict[str, Dict[str, float]] = {}
        for attribute, entry in body["attributeScores"].items():
            summary = entry.get("summaryScore") if isinstance(entry, dict) else None
            if isinstance(summary, dict) and "value" in summary:
                scores[attribute.lower()] = {"value": summary["value"]}
        return scores

    async def classify(self, text: str, languages: Optional[Sequence[str]] = None) -> Dict[str, Dict[str, float]]:
        """
        Score ``text`` for every toxicity attribute.

        Args:
            text: Already trimmed and truncated text.
            languages: Language hints; defaults to the client's languages.

        Returns:
            Mapping of attribute to ``{"value": score}``.

        Raises:
            ClassifierError: TIMEOUT, NETWORK (including a missing API key),
                or BAD_RESPONSE (non-2xx status or unusable body).
        """
        if not self.configured:
            raise ClassifierError(ClassifierErrorKind.NETWORK, "Perspective API key is not configured")

        payload = self.build_request(text, languages or self.languages)
        session = self._get_session()
        try:
            async with session.post(
                self.url,
                params={"key": self.api_key},
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                if response.status >= 300:
                    detail = await response.text()
                    logger.warning("[CLASSIFIER] Perspective returned %d: %s", response.status, detail[:200])
                    raise ClassifierError(
                        ClassifierErrorKind.BAD_RESPONSE,
                        f"Perspective returned HTTP {response.status}",
                        status=response.status,
                    )
                body = await response.json(content_type=None)
        except asyncio.TimeoutError as exc:
            logger.warning("[CLASSIFIER] Perspective call timed out after %ss", self.timeout_seconds)
            raise ClassifierError(ClassifierErrorKind.TIMEOUT, "Perspective call timed out") from exc
        except client_exceptions.ContentTypeError as exc:
            raise ClassifierError(ClassifierErrorKind.BAD_RESPONSE, "Perspective returned a non-JSON body") from exc
        except ValueError as exc:
            raise ClassifierError(ClassifierErrorKind.BAD_RESPONSE, "Perspective returned invalid JSON") from exc
        except client_exceptions.ClientError as exc:
            logger.warning("[CLASSIFIER] Network error calling Perspective: %s", exc)
            raise ClassifierError(ClassifierErrorKind.NETWORK, str(exc)) from exc

        return self.parse_response(body)
