"""
Affiliate platform catalogue — identifiers, canonical product URLs and the
default network program each platform offers.
"""

from typing import Optional
from affilai.utils import slugify

GENERIC_PLATFORM = "generic"

# platform -> Product column holding that platform's identifier
PLATFORM_IDENTIFIER_FIELDS = {
    "amazon": "amazon_asin",
    "tiktok": "tiktok_product_id",
    "instagram": "instagram_product_id",
    "youtube": "youtube_video_id",
    "pinterest": "pinterest_pin_id",
    GENERIC_PLATFORM: "product_url",
}

PLATFORMS = tuple(p for p in PLATFORM_IDENTIFIER_FIELDS if p != GENERIC_PLATFORM)

CANONICAL_PRODUCT_URLS = {
    "amazon": "https://www.amazon.com/dp/{id}",
    "tiktok": "https://shop.tiktok.com/view/product/{id}",
    "instagram": "https://www.instagram.com/p/{id}/",
    "youtube": "https://www.youtube.com/watch?v={id}",
    "pinterest": "https://www.pinterest.com/pin/{id}/",
}

# Default network program per platform. {slug} / {name} are filled from the product.
DEFAULT_PROGRAMS = {
    "tiktok": {
        "name": "TikTok Shop Creator Program",
        "commission_rate": 0.12,
        "cookie_duration": 14,
        "url": "https://affiliate.tiktok.com/{slug}",
    },
    "instagram": {
        "name": "Instagram Shopping - {name}",
        "commission_rate": 0.15,
        "cookie_duration": 30,
        "url": "https://business.instagram.com/shopping/{slug}",
    },
    "youtube": {
        "name": "YouTube Shopping Affiliate",
        "commission_rate": 0.10,
        "cookie_duration": 30,
        "url": "https://shopping.youtube.com/products/{slug}",
    },
    "pinterest": {
        "name": "Pinterest Buyable Pins",
        "commission_rate": 0.13,
        "cookie_duration": 30,
        "url": "https://business.pinterest.com/buyable/{slug}",
    },
    "amazon": {
        "name": "Amazon Associates",
        "commission_rate": 0.05,
        "cookie_duration": 24,
        "url": "https://affiliate-program.amazon.com",
    },
    GENERIC_PLATFORM: {
        "name": "Generic Affiliate",
        "commission_rate": 0.05,
        "cookie_duration": 30,
        "url": "https://example.com/affiliate/{slug}",
    },
}

# Amazon Associates pays by category; first keyword match wins.
AMAZON_CATEGORY_COMMISSION = [
    (("beauty", "skincare", "health", "wellness"), 0.10),
    (("fashion", "apparel"), 0.08),
    (("home", "kitchen"), 0.08),
    (("electronic", "tech"), 0.04),
]

UTM_MEDIUM = {
    "instagram": "shopping",
    "pinterest": "pin",
}

# Query parameter carrying the affiliate account identifier
AFFILIATE_ID_PARAM = {
    "amazon": "tag",
}


def normalize_platform(platform: Optional[str]) -> Optional[str]:
    if platform is None:
        return None
    value = platform.strip().lower()
    return value or None


def is_known_platform(platform: str) -> bool:
    return platform in PLATFORM_IDENTIFIER_FIELDS


def platform_identifier(product, platform: str) -> Optional[str]:
    """The product's identifier for a platform, or None when absent/blank."""
    field = PLATFORM_IDENTIFIER_FIELDS.get(platform)
    if not field:
        return None
    value = getattr(product, field, None)
    if value is None or not str(value).strip():
        return None
    return str(value).strip()


def platforms_with_identifiers(product) -> list[str]:
    return [p for p in PLATFORM_IDENTIFIER_FIELDS if platform_identifier(product, p)]


def canonical_product_url(product, platform: str) -> Optional[str]:
    identifier = platform_identifier(product, platform)
    if not identifier:
        return None
    if platform == GENERIC_PLATFORM:
        return identifier
    return CANONICAL_PRODUCT_URLS[platform].format(id=identifier)


def amazon_commission_for(category: str) -> float:
    lowered = (category or "").lower()
    for keywords, rate in AMAZON_CATEGORY_COMMISSION:
        if any(k in lowered for k in keywords):
            return rate
    return DEFAULT_PROGRAMS["amazon"]["commission_rate"]


def default_program(product, platform: str) -> dict:
    """The platform's default network program, filled in for this product."""
    template = DEFAULT_PROGRAMS.get(platform) or DEFAULT_PROGRAMS[GENERIC_PLATFORM]
    slug = slugify(product.name)
    commission = template["commission_rate"]
    if platform == "amazon":
        commission = amazon_commission_for(product.category)
    return {
        "name": template["name"].format(name=product.name),
        "platform": platform if platform in DEFAULT_PROGRAMS else GENERIC_PLATFORM,
        "commission_rate": commission,
        "cookie_duration": template["cookie_duration"],
        "affiliate_url": template["url"].format(slug=slug),
    }
