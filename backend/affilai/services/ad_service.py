"""
Ad Recommendation & Copy Generator.

analyze() picks an ad format and tone for a product through the Candidate Resolver,
along with the platform discovery ranks first and the category's selling points;
generate() asks the oracle for copy in that format and persists it. Generated copy
is append-only: every call writes a new row.
"""

import logging
import re
from typing import Optional

from affilai.config import get_settings
from affilai.errors import InvalidAdType, ProductNotFound
from affilai.models import AdType, GeneratedAdCopy
from affilai.oracle import OracleError, OracleMalformedResponse, extract_json_items
from affilai.schemas import AdAlternative, AdTypeCandidate, RecommendationResult
from affilai.services.candidate_resolver import (
    CandidateRecipe, CandidateResolver, CandidateSource, FallbackRule,
    read_number, read_text,
)
from affilai.services.discovery_service import ProgramDiscoveryService
from affilai.stores import CatalogStore
from affilai.utils import clamp

logger = logging.getLogger(__name__)
settings = get_settings()

AD_TYPES = tuple(t.value for t in AdType)

ANALYSIS_PROMPT = """Recommend the best advertising formats for this product.

Product Information:
- Name: {name}
- Category: {category}
- Description: {description}
- Price Range: {price_range}
- Target Audience: {target_audience}
- Trending Score: {trending_score}

Available ad types: {ad_types}

Return ONLY a JSON object with this structure:
{{
  "recommendations": [
    {{
      "ad_type": "story",
      "confidence": 0.90,
      "tone": "casual and trendy",
      "audience": "women 18-34 interested in skincare",
      "competition_level": "low|medium|high"
    }}
  ]
}}

Rules:
- At most 4 recommendations, best first
- ad_type must be one of the available ad types"""

COPY_PROMPT = """Write {ad_type_label} ad copy for this product.

Product Information:
- Name: {name}
- Category: {category}
- Description: {description}
- Price Range: {price_range}
- Target Audience: {target_audience}

Tone: {tone}
Key selling points: {selling_points}
{instructions}
Return ONLY a JSON object with this structure:
{{"headline": "...", "body": "...", "cta": "..."}}

Rules:
- Headline under 60 characters, CTA under 25 characters
- No guarantees, medical claims or income promises"""

# Misleading marketing claims. Flagged on the stored copy, never blocking.
CLAIM_PATTERNS = [
    (re.compile(r"\bguaranteed?\s+results?\b", re.IGNORECASE), "guaranteed results"),
    (re.compile(r"\b100\s*%\s*effective\b", re.IGNORECASE), "100% effective"),
    (re.compile(r"\bmiracle\s+cure\b", re.IGNORECASE), "miracle cure"),
    (re.compile(r"\blose\s+\d+\s+(pounds|lbs|kg)\s+in\s+\d+\s+days\b", re.IGNORECASE), "weight-loss timeline"),
    (re.compile(r"\bget\s+rich\s+quick\b", re.IGNORECASE), "get rich quick"),
    (re.compile(r"\bno\s+side\s+effects\b", re.IGNORECASE), "no side effects"),
    (re.compile(r"\bdoctor[\s-]+recommended\b", re.IGNORECASE), "doctor recommended"),
]


def check_ad_claims(text: str) -> list[str]:
    """Names of the misleading-claim patterns found in `text`."""
    return [label for pattern, label in CLAIM_PATTERNS if pattern.search(text or "")]


def ad_type_label(ad_type: str) -> str:
    return ad_type.replace("_", " ")


def compose_reasoning(candidate: AdTypeCandidate, category: str) -> str:
    audience = candidate.audience or "a broad audience"
    return (
        f"A {ad_type_label(candidate.ad_type)} in a {candidate.tone} tone suits {audience}; "
        f"competition for {category or 'this category'} is {candidate.competition_level}."
    )


# Category keyword -> selling points; first match wins. {name} is the product name.
SELLING_POINTS = [
    (("beauty", "skincare"), [
        "Clinically proven results", "Natural, clean ingredients",
        "Visible improvement in weeks", "{name} loved by thousands",
    ]),
    (("electronic", "wearable", "tech"), [
        "Cutting-edge technology", "Seamless integration",
        "Track your progress", "Premium build quality",
    ]),
    (("fashion", "apparel"), [
        "Trendsetting style", "Premium materials",
        "Versatile for any occasion", "Limited availability",
    ]),
    (("health", "wellness"), [
        "Science-backed formula", "Supports overall wellbeing",
        "Easy to incorporate daily", "Trusted by health experts",
    ]),
    (("fitness", "recovery"), [
        "Accelerate your recovery", "Professional-grade quality",
        "Used by athletes worldwide", "See results faster",
    ]),
    (("home", "kitchen"), [
        "Transform your space", "Built to last",
        "Saves time and effort", "Top-rated by customers",
    ]),
]

GENERIC_SELLING_POINTS = [
    "Premium quality", "Exceptional value", "Customer favorite", "Discover why {name} is trending",
]


def key_selling_points(category: str, name: str) -> list[str]:
    lowered = (category or "").lower()
    points = next((p for keywords, p in SELLING_POINTS if any(k in lowered for k in keywords)),
                  GENERIC_SELLING_POINTS)
    return [point.format(name=name) for point in points]


def audience_tone(target_audience: Optional[str]) -> Optional[str]:
    """Tone implied by the audience's age band, or None when it says nothing."""
    audience = target_audience or ""
    if "18-25" in audience or "18-30" in audience:
        return "casual and trendy"
    if "45" in audience or "50" in audience:
        return "professional and trustworthy"
    return None


def _ad_fallback(ad_type: AdType, confidence: float, tone: str, competition: str):
    def build(context: dict) -> AdTypeCandidate:
        return AdTypeCandidate(
            name=ad_type.value,
            confidence=confidence,
            tone=audience_tone(context.get("target_audience")) or tone,
            audience=context.get("target_audience") or "",
            competition_level=competition,
            source=CandidateSource.FALLBACK.value,
        )
    return build


class AdTypeRecipe(CandidateRecipe):
    kind = "ad type"
    fallback_rules = (
        FallbackRule(("beauty", "skincare", "fashion", "cosmetic"),
                     _ad_fallback(AdType.STORY, 0.92, "casual and trendy", "high")),
        FallbackRule(("tech", "electronic", "wearable", "gadget"),
                     _ad_fallback(AdType.VIDEO_SCRIPT, 0.87, "informative and confident", "medium")),
        FallbackRule(("health", "fitness", "wellness", "recovery"),
                     _ad_fallback(AdType.VIDEO_SCRIPT, 0.85, "energetic and motivating", "medium")),
        FallbackRule(("home", "kitchen", "decor"),
                     _ad_fallback(AdType.CAROUSEL, 0.80, "warm and practical", "low")),
    )

    def generic(self, context: dict) -> AdTypeCandidate:
        return _ad_fallback(AdType.SOCIAL_POST, 0.75, "friendly and engaging", "low")(context)

    def build_prompt(self, context: dict) -> str:
        return ANALYSIS_PROMPT.format(
            name=context["name"],
            category=context["category"] or "Unknown",
            description=context["description"] or "N/A",
            price_range=context["price_range"] or "N/A",
            target_audience=context["target_audience"] or "General",
            trending_score=context["trending_score"],
            ad_types=", ".join(AD_TYPES),
        )

    def parse(self, item: dict, context: dict) -> AdTypeCandidate:
        ad_type = read_text(item, "ad_type", "type").lower().replace(" ", "_")
        if ad_type not in AD_TYPES:
            raise OracleMalformedResponse(f"unknown ad type {ad_type!r}")
        competition = read_text(item, "competition_level", "competition", required=False).lower()
        return AdTypeCandidate(
            name=ad_type,
            confidence=clamp(read_number(item, "confidence", "confidence_score")),
            tone=read_text(item, "tone", required=False, default="friendly and engaging"),
            audience=read_text(item, "audience", required=False, default=context.get("target_audience") or ""),
            competition_level=competition if competition in ("low", "medium", "high") else "medium",
            source=CandidateSource.ORACLE.value,
        )


def _context(product) -> dict:
    return {
        "name": product.name,
        "category": product.category or "",
        "description": product.description or "",
        "price_range": product.price_range or "",
        "target_audience": product.target_audience or "",
        "trending_score": product.trending_score or 0,
    }


class AdService:
    def __init__(self, resolver: CandidateResolver, catalog: CatalogStore, discovery: ProgramDiscoveryService):
        self.resolver = resolver
        self.catalog = catalog
        self.discovery = discovery
        self.recipe = AdTypeRecipe()

    async def _load(self, product_id: int):
        product = await self.catalog.get_product(product_id)
        if product is None:
            raise ProductNotFound(f"product {product_id} not found", product_id=product_id)
        return product

    async def _ranked(self, product, source: CandidateSource) -> list[AdTypeCandidate]:
        ranked = await self.resolver.resolve(_context(product), source, self.recipe)
        if not ranked:
            # An oracle "no opinion" still needs an answer
            ranked = self.recipe.fallback(_context(product))
        unique, seen = [], set()
        for candidate in ranked:
            if candidate.ad_type not in seen:
                seen.add(candidate.ad_type)
                unique.append(candidate)
        return unique

    async def _result(
        self,
        product,
        ranked: list[AdTypeCandidate],
        source: CandidateSource,
    ) -> RecommendationResult:
        top = ranked[0]
        # Discovery never comes back empty, and absorbs oracle failures itself
        program = (await self.discovery.discover(product, source=source))[0]
        audience_match = program.audience_match_score if program.audience_match_score is not None else 0.5
        engagement = min(1.0, (product.trending_score or 0) / 100 * 0.6 + audience_match * 0.4)
        return RecommendationResult(
            ad_type=top.ad_type,
            confidence=clamp(top.confidence),
            alternatives=[AdAlternative(ad_type=c.ad_type, confidence=c.confidence) for c in ranked[1:]],
            reasoning=compose_reasoning(top, product.category),
            tone=top.tone,
            competition_level=top.competition_level,
            source=top.source,
            recommended_platform=program.platform,
            key_selling_points=key_selling_points(product.category, product.name),
            estimated_engagement_score=round(engagement, 4),
        )

    async def analyze(
        self,
        product_id: int,
        source: CandidateSource = CandidateSource.ORACLE,
    ) -> RecommendationResult:
        product = await self._load(product_id)
        return await self._result(product, await self._ranked(product, source), source)

    async def generate(
        self,
        product_id: int,
        ad_type: Optional[str] = None,
        custom_instructions: Optional[str] = None,
    ) -> GeneratedAdCopy:
        """Generate and persist one ad copy. Oracle trouble falls back to a template; never a no-op."""
        if ad_type is not None:
            ad_type = ad_type.strip().lower()
            if ad_type not in AD_TYPES:
                raise InvalidAdType(
                    f"unknown ad type {ad_type}; expected one of {', '.join(AD_TYPES)}",
                    product_id=product_id, policy="ad_types",
                )
        product = await self._load(product_id)
        ranked = await self._ranked(product, CandidateSource.ORACLE)
        recommendation = await self._result(product, ranked, CandidateSource.ORACLE)
        ad_type = ad_type or recommendation.ad_type
        chosen = next((c for c in ranked if c.ad_type == ad_type), ranked[0])

        try:
            headline, body, cta = await self._oracle_copy(
                product, ad_type, chosen.tone, recommendation.key_selling_points, custom_instructions,
            )
            source = "oracle"
        except OracleError as e:
            logger.warning(f"Ad copy oracle failed for product {product_id} ({type(e).__name__}: {e}) — using template")
            headline, body, cta = self._template_copy(product)
            source = "template"

        issues = check_ad_claims(" ".join((headline, body, cta)))
        if issues:
            logger.warning(f"Ad copy for product {product_id} contains flagged claims: {', '.join(issues)}")

        trending = product.trending_score or 0
        score = min(1.0, (trending / 100) * 0.6 + chosen.confidence * 0.4)

        copy = await self.catalog.upsert_ad_copy(
            product_id=product.id,
            variation_name=f"{product.name} - {ad_type} Ad",
            ad_type=ad_type,
            headline=headline,
            body_text=body,
            cta=cta,
            platform_specific_data={
                "suggested_tone": chosen.tone,
                "competition_level": chosen.competition_level,
                "target_platform": recommendation.recommended_platform,
                "key_selling_points": recommendation.key_selling_points,
                "source": source,
                "content_issues": issues,
                "custom_instructions": custom_instructions,
            },
            performance_score=round(max(0.0, score), 4),
        )
        logger.info(f"Generated {ad_type} ad copy {copy.id} for product {product_id} ({source})")
        return copy

    async def _oracle_copy(
        self,
        product,
        ad_type: str,
        tone: str,
        selling_points: list[str],
        custom_instructions: Optional[str],
    ) -> tuple[str, str, str]:
        prompt = COPY_PROMPT.format(
            ad_type_label=ad_type_label(ad_type),
            name=product.name,
            category=product.category or "Unknown",
            description=product.description or "N/A",
            price_range=product.price_range or "N/A",
            target_audience=product.target_audience or "General",
            tone=tone,
            selling_points="; ".join(selling_points),
            instructions=f"Additional instructions: {custom_instructions}\n" if custom_instructions else "",
        )
        text = await self.resolver.oracle.invoke(prompt, self.resolver.timeout)
        for item in extract_json_items(text):
            headline = read_text(item, "headline", required=False)
            body = read_text(item, "body", "body_text", required=False)
            cta = read_text(item, "cta", "call_to_action", required=False)
            if headline and body and cta:
                return headline, body, cta
        raise OracleMalformedResponse("ad copy reply lacks headline/body/cta")

    @staticmethod
    def _template_copy(product) -> tuple[str, str, str]:
        category = (product.category or "daily").lower()
        body = f"Transform your {category} routine with {product.name}. {product.description or ''}".strip()
        return f"Discover {product.name}", body, "Shop Now"
