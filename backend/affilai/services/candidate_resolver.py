"""
Candidate Resolver — shared by program discovery and ad-type analysis.

Turns an oracle reply (or, when the oracle fails, a keyword fallback table) into a
ranked list of scored candidates. Ranking is fully deterministic for a fixed
candidate set, whatever the oracle does.
"""

import enum
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from affilai.config import get_settings
from affilai.oracle import (
    OracleClient, OracleError, OracleMalformedResponse, extract_json_items,
)
from affilai.schemas import Candidate
from affilai.utils import clamp

logger = logging.getLogger(__name__)
settings = get_settings()


class CandidateSource(str, enum.Enum):
    ORACLE = "oracle"
    FALLBACK = "fallback"


def rank_key(candidate: Candidate) -> tuple:
    """confidence desc, official first, commission desc, cookie desc, name asc."""
    return (
        -candidate.confidence,
        not candidate.is_official,
        -candidate.commission_rate,
        -candidate.cookie_duration,
        candidate.name,
    )


def rank(candidates: Iterable[Candidate]) -> list[Candidate]:
    return sorted(candidates, key=rank_key)


# ══════════════════════════════════════════════════════════════════════
#  FIELD READERS for oracle items
# ══════════════════════════════════════════════════════════════════════

def read_number(item: dict, *keys: str, required: bool = True, default: float = 0.0) -> float:
    """First numeric value found under any of `keys`. Strings like "12%" are accepted; NaN and infinities are not."""
    for key in keys:
        if key not in item or item[key] is None:
            continue
        value = item[key]
        if isinstance(value, bool):
            break
        if isinstance(value, str):
            value = value.strip().rstrip("%").strip()
        try:
            number = float(value)
        except (TypeError, ValueError):
            break
        if not math.isfinite(number):
            raise OracleMalformedResponse(f"non-finite value for {key!r}")
        return number
    if required:
        raise OracleMalformedResponse(f"missing numeric field {keys[0]!r}")
    return default


def read_text(item: dict, *keys: str, required: bool = True, default: str = "") -> str:
    for key in keys:
        value = item.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    if required:
        raise OracleMalformedResponse(f"missing text field {keys[0]!r}")
    return default


def normalize_rate(value: float) -> float:
    """Rates are fractions. A model answering 12 (meaning 12%) gets 0.12."""
    if 1.0 < value <= 100.0:
        value = value / 100.0
    return clamp(value)


# ══════════════════════════════════════════════════════════════════════
#  RECIPES — what each pipeline asks and falls back to
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class FallbackRule:
    """Category keywords (case-insensitive substring) and the candidate they map to."""
    keywords: tuple[str, ...]
    candidate: Callable[[dict], Candidate]

    def matches(self, category: str) -> bool:
        lowered = (category or "").lower()
        return any(k in lowered for k in self.keywords)


class CandidateRecipe(ABC):
    kind: str = "candidate"
    fallback_rules: Sequence[FallbackRule] = ()

    @abstractmethod
    def build_prompt(self, context: dict) -> str:
        ...

    @abstractmethod
    def parse(self, item: dict, context: dict) -> Candidate:
        """One oracle item -> candidate. Raises OracleMalformedResponse on bad input."""

    @abstractmethod
    def generic(self, context: dict) -> Candidate:
        """The candidate used when no fallback rule matches."""

    def fallback(self, context: dict) -> list[Candidate]:
        """Table order is lookup order; the first matching rule wins."""
        category = context.get("category") or ""
        for rule in self.fallback_rules:
            if rule.matches(category):
                return [rule.candidate(context)]
        return [self.generic(context)]


class CandidateResolver:
    """resolve(context, source, recipe) -> ranked candidates. Never raises an OracleError."""

    def __init__(self, oracle: OracleClient, timeout: Optional[float] = None):
        self.oracle = oracle
        self.timeout = timeout or settings.oracle_timeout_seconds

    async def resolve(
        self,
        context: dict,
        source: CandidateSource,
        recipe: CandidateRecipe,
    ) -> list[Candidate]:
        if source == CandidateSource.FALLBACK:
            return rank(recipe.fallback(context))
        try:
            candidates = await self._ask_oracle(context, recipe)
        except OracleError as e:
            logger.warning(
                f"{recipe.kind} oracle failed for '{context.get('name')}' "
                f"({type(e).__name__}: {e}) — using fallback table"
            )
            return rank(recipe.fallback(context))
        return rank(candidates)

    async def _ask_oracle(self, context: dict, recipe: CandidateRecipe) -> list[Candidate]:
        text = await self.oracle.invoke(recipe.build_prompt(context), self.timeout)
        items = extract_json_items(text)
        try:
            return [recipe.parse(item, context) for item in items]
        except (KeyError, TypeError, ValueError, ArithmeticError) as e:
            # pydantic ValidationError is a ValueError
            raise OracleMalformedResponse(f"unusable {recipe.kind} item: {e}") from e
