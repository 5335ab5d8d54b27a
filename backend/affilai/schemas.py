"""
Ephemeral result types produced during a single discovery or analysis call.
Never persisted; only the winning program ends up on an AffiliateLink row.
"""

from dataclasses import dataclass, field
from typing import Optional
from pydantic import BaseModel, Field


class Candidate(BaseModel):
    """A scored option. Ranking only looks at these five fields."""
    name: str
    confidence: float = Field(ge=0.0, le=1.0)
    is_official: bool = False
    commission_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    cookie_duration: int = Field(default=0, ge=0)
    source: str = "oracle"  # oracle | fallback | amazon_fallback


class ProgramCandidate(Candidate):
    platform: str
    affiliate_url: str = ""
    audience_match_score: Optional[float] = None
    recommendation_reason: str = ""

    @property
    def program_name(self) -> str:
        return self.name


class AdTypeCandidate(Candidate):
    tone: str = "friendly and engaging"
    audience: str = ""
    competition_level: str = "medium"
    reasoning: str = ""

    @property
    def ad_type(self) -> str:
        return self.name


class AdAlternative(BaseModel):
    ad_type: str
    confidence: float


class RecommendationResult(BaseModel):
    ad_type: str
    confidence: float = Field(ge=0.0, le=1.0)
    alternatives: list[AdAlternative] = []
    reasoning: str
    tone: str
    competition_level: str
    source: str
    recommended_platform: Optional[str] = None
    key_selling_points: list[str] = []
    estimated_engagement_score: float = Field(default=0.0, ge=0.0, le=1.0)


@dataclass
class BatchItemError:
    product_id: int
    platform: Optional[str]
    error: str
    message: str
    policy: Optional[str] = None


@dataclass
class BatchLinkResult:
    created: list = field(default_factory=list)  # AffiliateLink rows
    errors: list[BatchItemError] = field(default_factory=list)
