"""
Credentials Router — per-platform affiliate accounts (Associate tag, creator id, shop id).
One credential per platform; saving again updates it. Secrets are encrypted at rest
and never returned.
"""

from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional
from affilai.crypto import mask_secret
from affilai.dependencies import get_credential_store
from affilai.errors import AffilAIError
from affilai.models import AffiliateCredential
from affilai.platforms import PLATFORMS, normalize_platform
from affilai.stores import CredentialStore
from affilai.utils import http_error_for

router = APIRouter()


# ── Schemas ──────────────────────────────────────────────────────────
class CredentialSave(BaseModel):
    affiliate_id: Optional[str] = None
    shop_id: Optional[str] = None
    account_name: Optional[str] = None
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    active: Optional[bool] = None
    verified: Optional[bool] = None
    notes: Optional[str] = None


class CredentialResponse(BaseModel):
    id: int
    platform: str
    affiliate_id: Optional[str]
    shop_id: Optional[str]
    account_name: Optional[str]
    api_key_hint: Optional[str] = None
    has_api_secret: bool = False
    active: bool
    verified: bool
    notes: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


# ── Helpers ───────────────────────────────────────────────────────────
def _cred_to_response(cred: AffiliateCredential) -> dict:
    """Convert a credential row to a response dict. Secrets are masked."""
    return {
        "id": cred.id,
        "platform": cred.platform,
        "affiliate_id": cred.affiliate_id,
        "shop_id": cred.shop_id,
        "account_name": cred.account_name,
        "api_key_hint": mask_secret(cred.api_key),
        "has_api_secret": bool(cred.api_secret),
        "active": bool(cred.active),
        "verified": bool(cred.verified),
        "notes": cred.notes,
        "created_at": cred.created_at,
        "updated_at": cred.updated_at,
    }


def _platform_or_404(platform: str) -> str:
    value = normalize_platform(platform)
    if value not in PLATFORMS:
        raise HTTPException(status_code=404, detail=f"Unknown platform: {platform}")
    return value


# ── Endpoints ────────────────────────────────────────────────────────
@router.get("", response_model=list[CredentialResponse])
async def list_credentials(store: CredentialStore = Depends(get_credential_store)):
    try:
        creds = await store.list_credentials()
    except AffilAIError as e:
        raise http_error_for(e)
    return [_cred_to_response(c) for c in creds]


@router.put("/{platform}", response_model=CredentialResponse)
async def save_credential(
    platform: str,
    payload: CredentialSave,
    store: CredentialStore = Depends(get_credential_store),
):
    platform = _platform_or_404(platform)
    try:
        cred = await store.save_credential(platform, **payload.model_dump(exclude_none=True))
    except AffilAIError as e:
        raise http_error_for(e)
    return _cred_to_response(cred)


@router.delete("/{platform}")
async def delete_credential(platform: str, store: CredentialStore = Depends(get_credential_store)):
    platform = _platform_or_404(platform)
    try:
        deleted = await store.delete_credential(platform)
    except AffilAIError as e:
        raise http_error_for(e)
    if not deleted:
        raise HTTPException(status_code=404, detail="Credential not found")
    return {"status": "deleted"}
