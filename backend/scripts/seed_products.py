#!/usr/bin/env python3
"""
Seed the catalog with demo products (trending categories for 2025-2026).
Run from backend/: python -m scripts.seed_products [--reset]

--reset drops and recreates every table first (development only).
"""
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

DEMO_PRODUCTS = [
    {
        "name": "Smart Rings (Oura Ring)",
        "category": "Wearable Health Technology",
        "description": "Sleep and activity tracking ring with heart rate monitoring and recovery insights.",
        "price_range": "$300-400",
        "target_audience": "Age 25-45, health-conscious professionals, fitness enthusiasts",
        "trending_score": 95,
        "amazon_asin": "B0CSVDLQN2",
        "youtube_video_id": "oura-ring-review",
    },
    {
        "name": "Snail Mucin Skincare Serum",
        "category": "Beauty & Skincare",
        "description": "Viral K-beauty essence with 97% snail secretion filtrate for plump, hydrated skin.",
        "price_range": "$20-30",
        "target_audience": "Age 18-35, K-beauty enthusiasts, skincare routines",
        "trending_score": 100,
        "amazon_asin": "B00PBX3L7K",
        "tiktok_product_id": "1729384756",
        "instagram_product_id": "CxSnailMucin",
    },
    {
        "name": "Massage Gun",
        "category": "Fitness & Recovery",
        "description": "Percussion therapy device for muscle recovery and post-workout relaxation.",
        "price_range": "$100-200",
        "target_audience": "Age 25-50, fitness enthusiasts, desk workers with tension",
        "trending_score": 85,
        "amazon_asin": "B07MHBRRBG",
        "youtube_video_id": "massage-gun-guide",
    },
    {
        "name": "Insulated Water Bottle",
        "category": "Home & Kitchen",
        "description": "Keeps drinks ice-cold for 24+ hours with a leak-proof lid.",
        "price_range": "$30-45",
        "target_audience": "Age 18-45, hydration-focused, aesthetic lifestyle",
        "trending_score": 90,
        "amazon_asin": "B0CJZMP7L1",
        "pinterest_pin_id": "882846383",
    },
    {
        "name": "Magnesium Glycinate Supplement",
        "category": "Health & Wellness",
        "description": "Highly absorbable magnesium for sleep and stress support.",
        "price_range": "$30-50",
        "target_audience": "Age 25-55, health-conscious consumers, sleep optimization",
        "trending_score": 88,
        "amazon_asin": "B0BSHJL1FV",
    },
]


async def main():
    from affilai.database import drop_and_recreate_db, init_db
    from affilai.stores import CatalogStore

    if "--reset" in sys.argv:
        await drop_and_recreate_db()
    else:
        await init_db()
    catalog = CatalogStore()
    existing = {p.name for p in await catalog.list_products()}
    created = 0
    for fields in DEMO_PRODUCTS:
        if fields["name"] in existing:
            continue
        product = await catalog.create_product(**fields)
        print(f"Created product {product.id}: {product.name}")
        created += 1
    print(f"Seeded {created} product(s); {len(existing)} already present.")


if __name__ == "__main__":
    asyncio.run(main())
