"""
Explanation Service

Asks the chat model why each curated candidate fits the user's reference
items. The model only explains; it never reorders or drops candidates.
Explanations are matched to candidates by position.

Any failure (no client configured, transport error, malformed JSON, empty
list) degrades to a generic explanation so the request still succeeds.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import replace
from typing import Any, Dict, List, Optional, Protocol, Sequence

from pydantic import BaseModel, Field, ValidationError

from ..catalog.models import CatalogRecord
from ..observability import PipelineObserver, notify
from .retrieval import ScoredCandidate

logger = logging.getLogger("nextwatch.explanations")

GENERIC_EXPLANATION = "Recommended based on similarity to your taste"
BLANK_EXPLANATION = "Matches your taste based on similarity analysis"
OVERVIEW_EXCERPT = 200

SYSTEM_PROMPT = (
    "You are a movie recommendation expert. You explain recommendations "
    "briefly and naturally. Respond with JSON only."
)


class ChatClient(Protocol):
    async def chat(
        self,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        temperature: float = 0.2,
        response_format: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]: ...


class ExplanationItem(BaseModel):
    title: str = ""
    why_recommended: Optional[str] = Field(default=None, alias="whyRecommended")


class ExplanationResponse(BaseModel):
    recommendations: List[ExplanationItem] = Field(default_factory=list)


def _describe(record: CatalogRecord) -> str:
    rating = f"{record.rating:.1f}" if record.rating is not None else "n/a"
    return f"{record.title} ({record.genres_text}, Rating: {rating})"


def build_prompt(reference: Sequence[CatalogRecord], candidates: Sequence[ScoredCandidate]) -> str:
    lines = ["The user loves these movies:", ""]
    lines.extend(f"- {_describe(record)}" for record in reference)
    lines.append("")
    lines.append(
        "We have pre-selected these movies using vector similarity. For EACH movie "
        "below, provide a brief, natural explanation (1-2 sentences) of WHY it "
        "matches their taste."
    )
    lines.append("Do NOT re-rank or exclude movies. Provide explanations for ALL movies.")
    lines.append("")

    for position, candidate in enumerate(candidates, start=1):
        record = candidate.record
        lines.append(f"{position}. {_describe(record)}")
        lines.append(f"   {(record.overview or '')[:OVERVIEW_EXCERPT]}")
        lines.append("")

    lines.append(
        'Return a JSON object: {"recommendations": '
        '[{"title": "Movie Title", "whyRecommended": "Explanation"}, ...]}'
    )
    return "\n".join(lines)


def with_generic(candidates: Sequence[ScoredCandidate]) -> List[ScoredCandidate]:
    return [replace(c, explanation=GENERIC_EXPLANATION) for c in candidates]


class ExplanationService:
    def __init__(
        self,
        client: Optional[ChatClient] = None,
        observer: Optional[PipelineObserver] = None,
    ) -> None:
        """
        Parameters
        ----------
        client : Optional[ChatClient]
            Chat-completion client. When None, every candidate receives the
            generic explanation.
        """
        self._client = client
        self._observer = observer or PipelineObserver()

    async def explain(
        self,
        reference: Sequence[CatalogRecord],
        candidates: Sequence[ScoredCandidate],
    ) -> List[ScoredCandidate]:
        """
        Return `candidates` in the same order with `explanation` filled in.
        """
        if not candidates:
            return []
        if self._client is None:
            return with_generic(candidates)

        prompt = build_prompt(reference, candidates)
        started = time.perf_counter()

        try:
            message = await self._client.chat(
                SYSTEM_PROMPT,
                [{"role": "user", "content": prompt}],
                response_format={"type": "json_object"},
            )
            content = message.get("content") or ""
            parsed = ExplanationResponse.model_validate(json.loads(content))
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.error("Failed to parse explanation response, using fallback: %s", exc)
            notify(self._observer.explanation_failed, exc)
            return with_generic(candidates)
        except Exception as exc:
            logger.error("Explanation generation failed, using fallback: %s", exc)
            notify(self._observer.explanation_failed, exc)
            return with_generic(candidates)

        notify(
            self._observer.explanation_generated,
            (time.perf_counter() - started) * 1000.0,
            len(prompt),
            len(content),
        )

        if not parsed.recommendations:
            logger.warning("Model returned no explanations, using generic text")
            return with_generic(candidates)

        explained = []
        for position, candidate in enumerate(candidates):
            text = None
            if position < len(parsed.recommendations):
                text = parsed.recommendations[position].why_recommended
            explained.append(replace(candidate, explanation=(text or "").strip() or BLANK_EXPLANATION))
        return explained
