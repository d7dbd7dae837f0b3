from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, List, Optional, TypeVar

from jsonmatch.analysis import analyze_text
from jsonmatch.config import RuntimeSettings, load_runtime_settings
from jsonmatch.enhance import enhance_json
from jsonmatch.errors import InvalidResponseFormatError, RequestTimeoutError
from jsonmatch.normalize import JsonDocument, validate_and_format
from jsonmatch.provider.factory import CompletionService
from jsonmatch.reconcile import Strategy, update_json
from jsonmatch.schemas import MatchResult, ValidationResult

log = logging.getLogger(__name__)

T = TypeVar("T")


class MatchSession:
    """Async facade over the synchronous pipeline for one wizard session.

    Holds the current document, analyzed text and matches. ``update`` and
    ``enhance`` only replace the document after a successful step, so a failed
    provider call leaves the previous document in place.
    """

    def __init__(
        self,
        service: CompletionService,
        *,
        timeout: Optional[float] = None,
        settings: Optional[RuntimeSettings] = None,
    ) -> None:
        self.service = service
        self.timeout = timeout
        self.settings = settings or load_runtime_settings()
        self.document: Optional[JsonDocument] = None
        self.text: str = ""
        self.matches: List[MatchResult] = []
        self.updated: Optional[str] = None

    async def _run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        call = asyncio.to_thread(func, *args, **kwargs)
        if self.timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, self.timeout)
        except asyncio.TimeoutError as exc:
            raise RequestTimeoutError(
                f"Request timed out after {self.timeout:g}s", provider=self.service.provider
            ) from exc

    @property
    def current_json(self) -> Optional[str]:
        """Display form of the latest document (updated if available)."""
        if self.updated is not None:
            return self.updated
        return self.document.display if self.document else None

    async def validate_and_format(self, text: str) -> ValidationResult:
        result = await asyncio.to_thread(validate_and_format, text)
        if result.is_valid and result.raw is not None:
            self.document = JsonDocument.from_text(result.raw)
            self.updated = None
            self.matches = []
        return result

    async def analyze(self, text: str, json_schema: Optional[str] = None) -> List[MatchResult]:
        """Match ``text`` against ``json_schema`` (defaults to the loaded document)."""

        schema = json_schema if json_schema is not None else self._require_document().raw
        matches = await self._run(analyze_text, text, schema, self.service, settings=self.settings)
        self.text = text
        self.matches = matches
        return matches

    async def update(
        self,
        matches: Optional[List[MatchResult]] = None,
        *,
        strategy: Strategy = "deterministic",
    ) -> str:
        source = self.current_json or self._require_document().display
        chosen = self.matches if matches is None else matches
        updated = await self._run(
            update_json, source, chosen, service=self.service, strategy=strategy, settings=self.settings
        )
        self.updated = updated
        return updated

    async def enhance(self) -> str:
        source = self.current_json or self._require_document().display
        try:
            enhanced = await self._run(enhance_json, source, self.matches, self.service, settings=self.settings)
        except InvalidResponseFormatError as exc:
            log.error("Enhancement rejected, keeping previous document: %s", exc)
            return source
        self.updated = enhanced
        return enhanced

    def _require_document(self) -> JsonDocument:
        if self.document is None:
            raise ValueError("No JSON document loaded; call validate_and_format first")
        return self.document


__all__ = ["MatchSession"]
