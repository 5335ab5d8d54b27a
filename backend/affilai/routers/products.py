"""
Products Router — catalog CRUD plus each product's link and ad copy history.
"""

from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from affilai.dependencies import get_catalog
from affilai.errors import AffilAIError
from affilai.stores import CatalogStore
from affilai.utils import http_error_for

router = APIRouter()


# ── Schemas ──────────────────────────────────────────────────────────
class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=512)
    category: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    price_range: Optional[str] = None
    target_audience: Optional[str] = None
    trending_score: int = Field(default=0, ge=0, le=100)
    notes: Optional[str] = None
    image_url: Optional[str] = None
    amazon_asin: Optional[str] = None
    tiktok_product_id: Optional[str] = None
    instagram_product_id: Optional[str] = None
    youtube_video_id: Optional[str] = None
    pinterest_pin_id: Optional[str] = None
    product_url: Optional[str] = None


class ProductResponse(ProductCreate):
    id: int
    trending_score: Optional[int] = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LinkResponse(BaseModel):
    id: int
    product_id: int
    product_name: str
    platform: str
    program_name: str
    commission_rate: Optional[float]
    cookie_duration: Optional[int]
    tracking_url: str
    destination_url: str
    status: str
    superseded_by_id: Optional[int] = None
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class AdCopyResponse(BaseModel):
    id: int
    product_id: int
    variation_name: Optional[str]
    ad_type: str
    headline: str
    body_text: Optional[str]
    cta: Optional[str]
    platform_specific_data: Optional[dict] = None
    performance_score: Optional[float] = None
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


# ── Endpoints ────────────────────────────────────────────────────────
@router.get("", response_model=list[ProductResponse])
async def list_products(category: Optional[str] = None, catalog: CatalogStore = Depends(get_catalog)):
    try:
        return await catalog.list_products(category=category)
    except AffilAIError as e:
        raise http_error_for(e)


@router.post("", response_model=ProductResponse, status_code=201)
async def create_product(payload: ProductCreate, catalog: CatalogStore = Depends(get_catalog)):
    try:
        return await catalog.create_product(**payload.model_dump())
    except AffilAIError as e:
        raise http_error_for(e)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: int, catalog: CatalogStore = Depends(get_catalog)):
    try:
        product = await catalog.get_product(product_id)
    except AffilAIError as e:
        raise http_error_for(e)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.get("/{product_id}/links", response_model=list[LinkResponse])
async def list_product_links(product_id: int, catalog: CatalogStore = Depends(get_catalog)):
    """All links for the product, superseded ones included for audit."""
    try:
        return await catalog.list_links_for_product(product_id)
    except AffilAIError as e:
        raise http_error_for(e)


@router.get("/{product_id}/ads", response_model=list[AdCopyResponse])
async def list_product_ads(product_id: int, catalog: CatalogStore = Depends(get_catalog)):
    try:
        return await catalog.list_ad_copies_for_product(product_id)
    except AffilAIError as e:
        raise http_error_for(e)
