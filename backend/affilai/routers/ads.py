"""
Ads Router — ad format recommendation and ad copy generation.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import Optional
from affilai.dependencies import get_ad_service
from affilai.errors import AffilAIError
from affilai.routers.products import AdCopyResponse
from affilai.schemas import RecommendationResult
from affilai.services.ad_service import AdService
from affilai.utils import http_error_for

router = APIRouter()


class GenerateAdRequest(BaseModel):
    ad_type: Optional[str] = None
    custom_instructions: Optional[str] = None


@router.get("/{product_id}/analyze", response_model=RecommendationResult)
async def analyze_product(product_id: int, ads: AdService = Depends(get_ad_service)):
    try:
        return await ads.analyze(product_id)
    except AffilAIError as e:
        raise http_error_for(e)


@router.post("/{product_id}/generate", response_model=AdCopyResponse, status_code=201)
async def generate_ad(
    product_id: int,
    payload: Optional[GenerateAdRequest] = None,
    ads: AdService = Depends(get_ad_service),
):
    payload = payload or GenerateAdRequest()
    try:
        return await ads.generate(product_id, payload.ad_type, payload.custom_instructions)
    except AffilAIError as e:
        raise http_error_for(e)
