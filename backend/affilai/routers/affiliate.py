"""
Affiliate Router — program discovery and affiliate link lifecycle.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional
from affilai.dependencies import get_catalog, get_discovery_service, get_link_service
from affilai.errors import AffilAIError, ProductNotFound
from affilai.routers.products import LinkResponse
from affilai.schemas import ProgramCandidate
from affilai.services.candidate_resolver import CandidateSource
from affilai.services.discovery_service import ProgramDiscoveryService
from affilai.services.link_service import LinkLifecycleService
from affilai.stores import CatalogStore
from affilai.utils import http_error_for

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Schemas ──────────────────────────────────────────────────────────
class DiscoverRequest(BaseModel):
    product_id: int
    platform: Optional[str] = None
    offline: bool = False  # skip the oracle, use the fallback table only


class GenerateLinkRequest(BaseModel):
    product_id: int
    platform: str


class GenerateAllRequest(BaseModel):
    product_ids: Optional[list[int]] = None


class BatchErrorResponse(BaseModel):
    product_id: int
    platform: Optional[str]
    error: str
    message: str
    policy: Optional[str] = None


class GenerateAllResponse(BaseModel):
    created: list[LinkResponse]
    errors: list[BatchErrorResponse]


# ── Endpoints ────────────────────────────────────────────────────────
@router.post("/discover", response_model=list[ProgramCandidate])
async def discover_programs(
    payload: DiscoverRequest,
    catalog: CatalogStore = Depends(get_catalog),
    discovery: ProgramDiscoveryService = Depends(get_discovery_service),
):
    source = CandidateSource.FALLBACK if payload.offline else CandidateSource.ORACLE
    try:
        product = await catalog.get_product(payload.product_id)
        if product is None:
            raise ProductNotFound(f"product {payload.product_id} not found", product_id=payload.product_id)
        return await discovery.discover(product, payload.platform, source=source)
    except AffilAIError as e:
        raise http_error_for(e)


@router.get("/links", response_model=list[LinkResponse])
async def list_links(
    status: Optional[str] = None,
    platform: Optional[str] = None,
    catalog: CatalogStore = Depends(get_catalog),
):
    try:
        return await catalog.list_links(status=status, platform=platform)
    except AffilAIError as e:
        raise http_error_for(e)


@router.post("/links", response_model=LinkResponse, status_code=201)
async def generate_link(payload: GenerateLinkRequest, links: LinkLifecycleService = Depends(get_link_service)):
    try:
        return await links.generate_link(payload.product_id, payload.platform)
    except AffilAIError as e:
        raise http_error_for(e)


@router.post("/links/generate-all", response_model=GenerateAllResponse)
async def generate_all_links(
    payload: Optional[GenerateAllRequest] = None,
    links: LinkLifecycleService = Depends(get_link_service),
):
    product_ids = payload.product_ids if payload else None
    try:
        result = await links.generate_all_links(product_ids)
    except AffilAIError as e:
        raise http_error_for(e)
    return {
        "created": result.created,
        "errors": [vars(err) for err in result.errors],
    }


@router.get("/links/{link_id}", response_model=LinkResponse)
async def get_link(link_id: int, catalog: CatalogStore = Depends(get_catalog)):
    try:
        link = await catalog.get_link(link_id)
    except AffilAIError as e:
        raise http_error_for(e)
    if not link:
        raise HTTPException(status_code=404, detail="Link not found")
    return link


@router.post("/links/{link_id}/refresh", response_model=LinkResponse)
async def refresh_link(link_id: int, links: LinkLifecycleService = Depends(get_link_service)):
    try:
        return await links.refresh_link(link_id)
    except AffilAIError as e:
        raise http_error_for(e)


@router.delete("/links/{link_id}")
async def delete_link(link_id: int, links: LinkLifecycleService = Depends(get_link_service)):
    try:
        await links.delete_link(link_id)
    except AffilAIError as e:
        raise http_error_for(e)
    return {"status": "deleted"}
