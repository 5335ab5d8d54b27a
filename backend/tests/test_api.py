"""
HTTP surface tests: routers wired to a throwaway database and an offline oracle.
"""

import pytest
from httpx import AsyncClient, ASGITransport

from affilai.config import get_settings
from affilai.dependencies import (
    get_ad_service, get_catalog, get_credential_store,
    get_discovery_service, get_link_service,
)
from affilai.main import app
from affilai.oracle import OfflineOracle
from tests.conftest import build_services

BEAUTY = {
    "name": "Snail Mucin Serum",
    "category": "Beauty & Skincare",
    "description": "Hydrating K-beauty essence.",
    "price_range": "$20-30",
    "trending_score": 100,
    "amazon_asin": "B00PBX3L7K",
    "tiktok_product_id": "1729384756",
}


@pytest.fixture
def services(session_factory):
    services = build_services(session_factory, OfflineOracle())
    app.dependency_overrides[get_catalog] = lambda: services.catalog
    app.dependency_overrides[get_credential_store] = lambda: services.credentials
    app.dependency_overrides[get_discovery_service] = lambda: services.discovery
    app.dependency_overrides[get_link_service] = lambda: services.links
    app.dependency_overrides[get_ad_service] = lambda: services.ads
    yield services
    app.dependency_overrides.clear()


@pytest.fixture
async def client(services):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _create_product(client, **overrides) -> dict:
    response = await client.post("/api/products", json={**BEAUTY, **overrides})
    assert response.status_code == 201
    return response.json()


# ── Products ─────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_create_and_get_product(client):
    created = await _create_product(client)
    assert created["id"] > 0

    response = await client.get(f"/api/products/{created['id']}")
    assert response.status_code == 200
    assert response.json()["name"] == "Snail Mucin Serum"

    listing = await client.get("/api/products", params={"category": "Beauty & Skincare"})
    assert [p["id"] for p in listing.json()] == [created["id"]]


@pytest.mark.anyio
async def test_get_missing_product_is_404(client):
    response = await client.get("/api/products/999")
    assert response.status_code == 404


@pytest.mark.anyio
async def test_create_product_validates_trending_score(client):
    response = await client.post("/api/products", json={**BEAUTY, "trending_score": 150})
    assert response.status_code == 422


# ── Discovery ────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_discover_offline(client):
    product = await _create_product(client)
    response = await client.post("/api/affiliate/discover", json={"product_id": product["id"], "offline": True})

    assert response.status_code == 200
    programs = response.json()
    assert programs[0]["platform"] == "tiktok"
    assert programs[0]["confidence"] == pytest.approx(0.92)
    assert all(p["source"] == "fallback" for p in programs)


@pytest.mark.anyio
async def test_discover_unknown_product(client):
    response = await client.post("/api/affiliate/discover", json={"product_id": 999})
    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "ProductNotFound"


# ── Credentials ──────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_save_credential_masks_secrets(client):
    response = await client.put(
        "/api/credentials/TikTok",
        json={"affiliate_id": "creator-42", "api_key": "sk-abcdef1234", "api_secret": "shh"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["platform"] == "tiktok"
    assert data["api_key_hint"] == "*********1234"
    assert data["has_api_secret"] is True
    assert "api_key" not in data
    assert "api_secret" not in data

    listing = await client.get("/api/credentials")
    assert [c["platform"] for c in listing.json()] == ["tiktok"]


@pytest.mark.anyio
async def test_credential_for_unknown_platform_is_404(client):
    response = await client.put("/api/credentials/myspace", json={"affiliate_id": "x"})
    assert response.status_code == 404


@pytest.mark.anyio
async def test_delete_credential(client):
    await client.put("/api/credentials/amazon", json={"affiliate_id": "shop-20"})
    assert (await client.delete("/api/credentials/amazon")).status_code == 200
    assert (await client.delete("/api/credentials/amazon")).status_code == 404


# ── Links ────────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_generate_link_and_list(client):
    product = await _create_product(client)
    await client.put("/api/credentials/tiktok", json={"affiliate_id": "creator-42"})

    response = await client.post("/api/affiliate/links", json={"product_id": product["id"], "platform": "tiktok"})
    assert response.status_code == 201
    link = response.json()
    assert link["status"] == "active"
    assert link["platform"] == "tiktok"
    assert "utm_source=tiktok" in link["tracking_url"]

    by_product = await client.get(f"/api/products/{product['id']}/links")
    assert [l["id"] for l in by_product.json()] == [link["id"]]

    fetched = await client.get(f"/api/affiliate/links/{link['id']}")
    assert fetched.json()["tracking_url"] == link["tracking_url"]

    active = await client.get("/api/affiliate/links", params={"status": "active", "platform": "tiktok"})
    assert [l["id"] for l in active.json()] == [link["id"]]


@pytest.mark.anyio
async def test_generate_link_without_identifier_is_422(client):
    product = await _create_product(client)
    response = await client.post("/api/affiliate/links", json={"product_id": product["id"], "platform": "youtube"})

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["error"] == "NoPlatformIdentifier"
    assert detail["platform"] == "youtube"
    assert detail["policy"] == "platform_identifier_required"


@pytest.mark.anyio
async def test_generate_link_without_credential_is_422(client):
    product = await _create_product(client)
    response = await client.post("/api/affiliate/links", json={"product_id": product["id"], "platform": "tiktok"})

    assert response.status_code == 422
    assert response.json()["detail"]["policy"] == "require_affiliate_credentials"


@pytest.mark.anyio
async def test_refresh_and_delete_link(client):
    product = await _create_product(client)
    await client.put("/api/credentials/tiktok", json={"affiliate_id": "creator-42"})
    link = (await client.post(
        "/api/affiliate/links", json={"product_id": product["id"], "platform": "tiktok"},
    )).json()

    refreshed = await client.post(f"/api/affiliate/links/{link['id']}/refresh")
    assert refreshed.status_code == 200
    assert refreshed.json()["status"] == "active"

    assert (await client.delete(f"/api/affiliate/links/{link['id']}")).status_code == 200
    assert (await client.get(f"/api/affiliate/links/{link['id']}")).status_code == 404
    assert (await client.delete(f"/api/affiliate/links/{link['id']}")).status_code == 404


@pytest.mark.anyio
async def test_generate_all_reports_per_item_errors(client):
    product = await _create_product(client)
    await client.put("/api/credentials/tiktok", json={"affiliate_id": "creator-42"})

    response = await client.post("/api/affiliate/links/generate-all", json={"product_ids": [product["id"], 999]})
    assert response.status_code == 200
    data = response.json()

    assert [(l["product_id"], l["platform"]) for l in data["created"]] == [(product["id"], "tiktok")]
    errors = {(e["product_id"], e["platform"]): e for e in data["errors"]}
    assert errors[(999, None)]["error"] == "ProductNotFound"
    assert errors[(product["id"], "amazon")]["policy"] == "require_affiliate_credentials"


# ── Ads ──────────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_analyze_and_generate_ad(client):
    product = await _create_product(client)

    analysis = await client.get(f"/api/ads/{product['id']}/analyze")
    assert analysis.status_code == 200
    assert analysis.json()["ad_type"] == "story"
    assert analysis.json()["recommended_platform"] == "tiktok"
    assert len(analysis.json()["key_selling_points"]) == 4

    generated = await client.post(f"/api/ads/{product['id']}/generate", json={"ad_type": "carousel"})
    assert generated.status_code == 201
    copy = generated.json()
    assert copy["ad_type"] == "carousel"
    assert copy["headline"] == "Discover Snail Mucin Serum"

    history = await client.get(f"/api/products/{product['id']}/ads")
    assert [c["id"] for c in history.json()] == [copy["id"]]


@pytest.mark.anyio
async def test_generate_ad_rejects_unknown_type(client):
    product = await _create_product(client)
    response = await client.post(f"/api/ads/{product['id']}/generate", json={"ad_type": "billboard"})
    assert response.status_code == 422
    assert response.json()["detail"]["policy"] == "ad_types"


# ── Auth ─────────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_api_key_required_when_configured(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "api_key", "secret-key")

    assert (await client.get("/api/products")).status_code == 401
    bad = await client.get("/api/products", headers={"Authorization": "Bearer wrong"})
    assert bad.status_code == 401
    ok = await client.get("/api/products", headers={"Authorization": "Bearer secret-key"})
    assert ok.status_code == 200
    # health stays open
    assert (await client.get("/api/health")).status_code == 200
