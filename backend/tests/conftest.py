"""
Shared fixtures: a throwaway sqlite database per test, a scripted oracle, and the
service graph wired against both.
"""

import asyncio
import os

# Must be set before affilai.config is imported anywhere
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["API_KEY"] = ""
os.environ["ENCRYPTION_KEY"] = ""
os.environ["ORACLE_MODEL"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["ANTHROPIC_API_KEY"] = ""

from types import SimpleNamespace

import pytest

from affilai.database import init_db, make_engine, make_session_factory
from affilai.models import Product
from affilai.oracle import OfflineOracle, OracleUnavailable
from affilai.services.ad_service import AdService
from affilai.services.candidate_resolver import CandidateResolver
from affilai.services.discovery_service import ProgramDiscoveryService
from affilai.services.link_service import LinkLifecycleService
from affilai.stores import CatalogStore, CredentialStore


class StubOracle:
    """
    Deterministic oracle. `reply` is a string, an exception instance, or a
    callable taking the prompt and returning either. Every prompt is recorded.
    """

    def __init__(self, reply=None, delay: float = 0.0):
        self.reply = reply
        self.delay = delay
        self.prompts = []

    async def invoke(self, prompt, timeout=None):
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self.reply(prompt) if callable(self.reply) else self.reply
        if reply is None:
            raise OracleUnavailable("stub has no reply")
        if isinstance(reply, Exception):
            raise reply
        return reply


def make_product(**overrides) -> Product:
    """Unsaved product for tests that never touch the database."""
    fields = dict(
        id=1,
        name="Snail Mucin Serum",
        category="Beauty & Skincare",
        description="Hydrating K-beauty essence.",
        price_range="$20-30",
        target_audience="Age 18-35, skincare enthusiasts",
        trending_score=100,
    )
    fields.update(overrides)
    return Product(**fields)


def build_services(session_factory, oracle) -> SimpleNamespace:
    catalog = CatalogStore(session_factory)
    credentials = CredentialStore(session_factory)
    resolver = CandidateResolver(oracle, timeout=1.0)
    discovery = ProgramDiscoveryService(resolver)
    return SimpleNamespace(
        oracle=oracle,
        catalog=catalog,
        credentials=credentials,
        resolver=resolver,
        discovery=discovery,
        links=LinkLifecycleService(discovery, catalog, credentials),
        ads=AdService(resolver, catalog, discovery),
    )


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def session_factory(tmp_path, anyio_backend):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    await init_db(bind=engine)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def offline(session_factory):
    """Service graph with no oracle: every call takes the fallback tables."""
    return build_services(session_factory, OfflineOracle())


@pytest.fixture
def stub_oracle():
    return StubOracle()


@pytest.fixture
def scripted(session_factory, stub_oracle):
    """Service graph driven by `stub_oracle`; set stub_oracle.reply per test."""
    return build_services(session_factory, stub_oracle)


@pytest.fixture
async def beauty_product(session_factory, anyio_backend):
    catalog = CatalogStore(session_factory)
    return await catalog.create_product(
        name="Snail Mucin Serum",
        category="Beauty & Skincare",
        description="Hydrating K-beauty essence.",
        price_range="$20-30",
        target_audience="Age 18-35, skincare enthusiasts",
        trending_score=100,
        amazon_asin="B00PBX3L7K",
        tiktok_product_id="1729384756",
    )
