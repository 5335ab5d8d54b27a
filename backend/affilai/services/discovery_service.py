"""
Program Discovery Service — ranks affiliate programs for a product, per platform.

Asks the oracle for programs on each platform the product is listed on, falls back
to the platform's default network program scored by category fit, and guarantees
a non-empty answer by appending Amazon Associates when nothing official or
well-paying was found.
"""

import logging
from typing import Optional

from affilai.config import get_settings
from affilai.errors import NoPlatformIdentifier
from affilai.oracle import OracleMalformedResponse
from affilai.platforms import (
    GENERIC_PLATFORM, PLATFORMS, DEFAULT_PROGRAMS, default_program,
    is_known_platform, normalize_platform, platforms_with_identifiers,
)
from affilai.schemas import ProgramCandidate
from affilai.services.candidate_resolver import (
    CandidateRecipe, CandidateResolver, CandidateSource, FallbackRule,
    normalize_rate, rank, read_number, read_text,
)
from affilai.utils import clamp

logger = logging.getLogger(__name__)
settings = get_settings()

AMAZON_ASSOCIATES = "Amazon Associates"

DISCOVERY_PROMPT = """Analyze the following product and find the best affiliate programs for it on {platform_label}.

Product Information:
- Name: {name}
- Category: {category}
- Description: {description}
- Price Range: {price_range}
- Target Audience: {target_audience}
- Trending Score: {trending_score}

Consider platform-specific factors:
- TikTok Shop: viral potential, ages 18-35, trending products
- Instagram Shopping: visual appeal, ages 25-45, lifestyle fit
- Amazon Associates: broad reach, all ages, convenience
- YouTube Shopping: educational/reviews, ages 25-55, detailed products
- Pinterest: inspiration, ages 30-50, home/DIY/fashion

Return ONLY a JSON object with this structure:
{{
  "programs": [
    {{
      "program_name": "Brand or network program name",
      "platform": "{platform_hint}",
      "commission_rate": 0.10,
      "cookie_duration": 30,
      "affiliate_url": "https://example.com/affiliate",
      "is_official": true,
      "confidence_score": 0.90,
      "audience_match_score": 0.85,
      "recommendation_reason": "Strong age match (18-25)"
    }}
  ]
}}

Rules:
- Return at most 5 programs, best first
- {platform_rule}
- is_official is true only when the brand runs the program itself
- If no program exists, return {{"programs": []}}"""

# Category keyword -> fit on that platform. Fallback confidence = 0.75 + 0.17 * fit.
CATEGORY_FIT = {
    "tiktok": [
        (("beauty", "skincare", "fashion", "apparel"), 1.0),
        (("health", "wellness", "fitness", "recovery"), 0.9),
        (("wearable",), 0.8),
        (("electronic", "tech"), 0.7),
    ],
    "instagram": [
        (("beauty", "skincare", "fashion", "apparel"), 1.0),
        (("home", "kitchen", "health", "wellness"), 0.9),
        (("fitness", "recovery"), 0.8),
    ],
    "youtube": [
        (("electronic", "wearable", "tech"), 1.0),
        (("fitness", "recovery", "health", "wellness"), 0.9),
        (("home", "kitchen"), 0.8),
    ],
    "pinterest": [
        (("home", "kitchen", "fashion", "apparel"), 1.0),
        (("beauty", "skincare"), 0.9),
        (("health", "wellness"), 0.8),
    ],
    "amazon": [
        (("beauty", "skincare", "fashion", "apparel", "home", "kitchen",
          "health", "wellness", "fitness", "recovery", "electronic", "tech", "wearable"), 0.9),
    ],
}

GENERIC_CONFIDENCE = 0.75

REASON_TEMPLATES = {
    "tiktok": "{category} performs well on TikTok",
    "instagram": "Visual platform suited to {category}",
    "youtube": "Detailed reviews boost {category} sales",
    "pinterest": "Discovery-driven audience for {category}",
    "amazon": "Broad {category} reach",
}


def fallback_confidence(fit: float) -> float:
    return round(GENERIC_CONFIDENCE + 0.17 * fit, 3)


def build_context(product, platform: str) -> dict:
    return {
        "product": product,
        "name": product.name,
        "category": product.category or "",
        "description": product.description or "",
        "price_range": product.price_range or "",
        "target_audience": product.target_audience or "",
        "trending_score": product.trending_score or 0,
        "platform": platform,
    }


class ProgramRecipe(CandidateRecipe):
    """Oracle prompt, item parser and fallback table for one platform."""
    kind = "program"

    def __init__(self, platform: str):
        self.platform = platform
        self.fallback_rules = [
            FallbackRule(keywords, self._network_program(fit))
            for keywords, fit in CATEGORY_FIT.get(platform, [])
        ]

    def _network_program(self, fit: float):
        def build(context: dict) -> ProgramCandidate:
            return self._default_candidate(context, fallback_confidence(fit))
        return build

    def _default_candidate(self, context: dict, confidence: float) -> ProgramCandidate:
        program = default_program(context["product"], self.platform)
        reason = REASON_TEMPLATES.get(self.platform, "General-purpose affiliate program for {category}")
        return ProgramCandidate(
            name=program["name"],
            platform=program["platform"],
            commission_rate=program["commission_rate"],
            cookie_duration=program["cookie_duration"],
            affiliate_url=program["affiliate_url"],
            is_official=False,
            confidence=confidence,
            source=CandidateSource.FALLBACK.value,
            recommendation_reason=reason.format(category=context["category"] or "this product"),
        )

    def generic(self, context: dict) -> ProgramCandidate:
        return self._default_candidate(context, GENERIC_CONFIDENCE)

    def build_prompt(self, context: dict) -> str:
        if self.platform == GENERIC_PLATFORM:
            platform_label = "any platform"
            platform_hint = "|".join(PLATFORMS)
            platform_rule = f"platform must be one of: {', '.join(PLATFORMS)}"
        else:
            platform_label = self.platform
            platform_hint = self.platform
            platform_rule = f"Only include programs that pay out on {self.platform}"
        return DISCOVERY_PROMPT.format(
            platform_label=platform_label,
            platform_hint=platform_hint,
            platform_rule=platform_rule,
            name=context["name"],
            category=context["category"] or "Unknown",
            description=context["description"] or "N/A",
            price_range=context["price_range"] or "N/A",
            target_audience=context["target_audience"] or "General",
            trending_score=context["trending_score"],
        )

    def parse(self, item: dict, context: dict) -> ProgramCandidate:
        platform = normalize_platform(item.get("platform") if isinstance(item.get("platform"), str) else None)
        platform = platform or self.platform
        if not is_known_platform(platform):
            raise OracleMalformedResponse(f"unknown platform {platform!r}")
        audience = item.get("audience_match_score")
        official = item.get("is_official")
        if isinstance(official, str):
            official = official.strip().lower() == "true"
        affiliate_url = read_text(item, "affiliate_url", "url", required=False)
        if not affiliate_url:
            affiliate_url = default_program(context["product"], platform)["affiliate_url"]
        return ProgramCandidate(
            name=read_text(item, "program_name", "name"),
            platform=platform,
            confidence=clamp(read_number(item, "confidence_score", "confidence")),
            commission_rate=normalize_rate(read_number(item, "commission_rate", "commission")),
            cookie_duration=max(0, int(read_number(
                item, "cookie_duration", "cookie_duration_days", required=False,
            ))),
            affiliate_url=affiliate_url,
            is_official=official is True,
            audience_match_score=clamp(read_number(item, "audience_match_score", required=False))
            if audience is not None else None,
            recommendation_reason=read_text(item, "recommendation_reason", "reason", required=False),
            source=CandidateSource.ORACLE.value,
        )


def amazon_fallback_candidate() -> ProgramCandidate:
    return ProgramCandidate(
        name=AMAZON_ASSOCIATES,
        platform="amazon",
        commission_rate=settings.amazon_fallback_commission,
        cookie_duration=DEFAULT_PROGRAMS["amazon"]["cookie_duration"],
        affiliate_url=DEFAULT_PROGRAMS["amazon"]["url"],
        is_official=False,
        confidence=settings.amazon_fallback_confidence,
        source="amazon_fallback",
        recommendation_reason="No official or well-paying program found; Amazon Associates fallback",
    )


def needs_amazon_fallback(candidates: list[ProgramCandidate]) -> bool:
    """Empty, or nothing official and every commission below the minimum."""
    if not candidates:
        return True
    return all(
        not c.is_official and c.commission_rate < settings.min_official_commission
        for c in candidates
    )


class ProgramDiscoveryService:
    """discover(product, platform=None) -> ranked ProgramCandidates, never empty."""

    def __init__(self, resolver: CandidateResolver):
        self.resolver = resolver

    async def discover(
        self,
        product,
        platform: Optional[str] = None,
        source: CandidateSource = CandidateSource.ORACLE,
    ) -> list[ProgramCandidate]:
        platform = normalize_platform(platform)
        if platform is not None:
            if not is_known_platform(platform):
                raise NoPlatformIdentifier(
                    f"unknown platform {platform}",
                    product_id=product.id, platform=platform, policy="known_platforms",
                )
            passes = [platform]
        else:
            passes = platforms_with_identifiers(product) or [GENERIC_PLATFORM]

        merged: list[ProgramCandidate] = []
        seen: set[tuple[str, str]] = set()
        for p in passes:
            for candidate in await self._discover_platform(product, p, source):
                key = (candidate.platform, candidate.name)
                if key not in seen:
                    seen.add(key)
                    merged.append(candidate)
        return rank(merged)

    async def _discover_platform(
        self,
        product,
        platform: str,
        source: CandidateSource,
    ) -> list[ProgramCandidate]:
        context = build_context(product, platform)
        candidates = await self.resolver.resolve(context, source, ProgramRecipe(platform))
        if platform != GENERIC_PLATFORM:
            candidates = [c for c in candidates if c.platform == platform]

        if needs_amazon_fallback(candidates):
            fallback = amazon_fallback_candidate()
            if not any(c.platform == fallback.platform and c.name == fallback.name for c in candidates):
                logger.info(
                    f"No official program for product {product.id} on {platform} — "
                    f"appending {AMAZON_ASSOCIATES} fallback"
                )
                candidates.append(fallback)

        candidates = [c.model_copy(update={"confidence": clamp(c.confidence)}) for c in candidates]
        return rank(candidates)
