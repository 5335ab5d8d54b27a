"""
Tests for candidate ranking, the fallback table and oracle parsing in the resolver.
"""

import pytest

from affilai.oracle import OracleMalformedResponse, OracleTimeout
from affilai.schemas import Candidate
from affilai.services.candidate_resolver import (
    CandidateRecipe, CandidateResolver, CandidateSource, FallbackRule,
    normalize_rate, rank, read_number,
)
from affilai.utils import clamp
from tests.conftest import StubOracle


class FruitRecipe(CandidateRecipe):
    kind = "fruit"
    fallback_rules = (
        FallbackRule(("citrus",), lambda ctx: Candidate(name="orange", confidence=0.9, source="fallback")),
        FallbackRule(("citrus", "berry"), lambda ctx: Candidate(name="strawberry", confidence=0.8, source="fallback")),
    )

    def build_prompt(self, context):
        return f"Pick a fruit for {context['category']}"

    def parse(self, item, context):
        return Candidate(
            name=item["name"],
            confidence=clamp(read_number(item, "confidence")),
            commission_rate=normalize_rate(read_number(item, "commission_rate", required=False)),
        )

    def generic(self, context):
        return Candidate(name="apple", confidence=0.75, source="fallback")


def _candidate(name, confidence, official=False, commission=0.0, cookie=0):
    return Candidate(
        name=name, confidence=confidence, is_official=official,
        commission_rate=commission, cookie_duration=cookie,
    )


# ── Ranking ──────────────────────────────────────────────────────────

def test_official_program_wins_confidence_tie():
    a = _candidate("A", 0.9, official=True, commission=0.10, cookie=30)
    b = _candidate("B", 0.9, official=False, commission=0.12, cookie=60)
    assert [c.name for c in rank([b, a])] == ["A", "B"]


def test_full_tie_break_chain():
    candidates = [
        _candidate("zeta", 0.8, commission=0.10, cookie=30),
        _candidate("alpha", 0.8, commission=0.10, cookie=30),
        _candidate("long-cookie", 0.8, commission=0.10, cookie=90),
        _candidate("high-commission", 0.8, commission=0.20, cookie=1),
        _candidate("confident", 0.95),
    ]
    assert [c.name for c in rank(candidates)] == [
        "confident", "high-commission", "long-cookie", "alpha", "zeta",
    ]


def test_rank_is_order_independent():
    candidates = [_candidate(n, 0.7, commission=0.05) for n in ("c", "a", "b")]
    assert [c.name for c in rank(candidates)] == [c.name for c in rank(reversed(candidates))]


# ── Field readers ────────────────────────────────────────────────────

@pytest.mark.parametrize("raw, expected", [(0.12, 0.12), (12, 0.12), (100, 1.0), (150, 1.0), (-0.2, 0.0)])
def test_normalize_rate(raw, expected):
    assert normalize_rate(raw) == pytest.approx(expected)


def test_read_number_accepts_aliases_and_percent_strings():
    assert read_number({"confidence_score": "0.8"}, "confidence", "confidence_score") == 0.8
    assert read_number({"commission": "12%"}, "commission") == 12.0
    assert read_number({}, "cookie_duration", required=False, default=7) == 7


@pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan"), "1e400", "NaN", "Infinity%"])
def test_read_number_rejects_non_finite_values(value):
    with pytest.raises(OracleMalformedResponse):
        read_number({"cookie_duration": value}, "cookie_duration")


# ── Fallback table ───────────────────────────────────────────────────

@pytest.mark.anyio
@pytest.mark.parametrize("category, expected", [
    ("Citrus & Berry", "orange"),
    ("BERRY bowls", "strawberry"),
    ("Stone fruit", "apple"),
    ("", "apple"),
])
async def test_fallback_first_matching_keyword_wins(category, expected):
    resolver = CandidateResolver(StubOracle(), timeout=1)
    ranked = await resolver.resolve({"category": category}, CandidateSource.FALLBACK, FruitRecipe())
    assert [c.name for c in ranked] == [expected]


@pytest.mark.anyio
async def test_fallback_source_never_calls_oracle():
    oracle = StubOracle('[{"name": "kiwi", "confidence": 0.99}]')
    resolver = CandidateResolver(oracle, timeout=1)
    await resolver.resolve({"category": "citrus"}, CandidateSource.FALLBACK, FruitRecipe())
    assert oracle.prompts == []


# ── Oracle path ──────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_oracle_reply_is_parsed_and_ranked():
    oracle = StubOracle(
        'Here you go:\n```json\n[{"name": "kiwi", "confidence": 0.6}, {"name": "fig", "confidence": 0.95}]\n```'
    )
    resolver = CandidateResolver(oracle, timeout=1)
    ranked = await resolver.resolve({"category": "citrus"}, CandidateSource.ORACLE, FruitRecipe())
    assert [c.name for c in ranked] == ["fig", "kiwi"]
    assert oracle.prompts == ["Pick a fruit for citrus"]


@pytest.mark.anyio
async def test_oracle_percent_commission_is_normalized():
    oracle = StubOracle('[{"name": "kiwi", "confidence": 0.6, "commission_rate": 15}]')
    ranked = await CandidateResolver(oracle, timeout=1).resolve({"category": ""}, CandidateSource.ORACLE, FruitRecipe())
    assert ranked[0].commission_rate == pytest.approx(0.15)


@pytest.mark.anyio
@pytest.mark.parametrize("reply", [
    "I could not find anything useful.",
    '[{"name": "kiwi"}]',
    '[{"confidence": 0.9}]',
    OracleTimeout("too slow"),
    None,
])
async def test_oracle_failures_take_the_fallback(reply):
    resolver = CandidateResolver(StubOracle(reply), timeout=1)
    ranked = await resolver.resolve({"category": "citrus"}, CandidateSource.ORACLE, FruitRecipe())
    assert [c.name for c in ranked] == ["orange"]
    assert ranked[0].source == "fallback"


@pytest.mark.anyio
async def test_empty_oracle_answer_is_not_a_failure():
    resolver = CandidateResolver(StubOracle("[]"), timeout=1)
    ranked = await resolver.resolve({"category": "citrus"}, CandidateSource.ORACLE, FruitRecipe())
    assert ranked == []
