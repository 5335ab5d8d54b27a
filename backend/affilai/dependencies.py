"""
Process-wide service instances, wired once and handed to routers via Depends.

The oracle implementation is chosen here, at construction, from ORACLE_MODEL.
The link service must be a singleton: its single-flight map only coalesces
callers that share the instance.
"""

from functools import lru_cache

from affilai.oracle import OracleClient, create_oracle
from affilai.services.ad_service import AdService
from affilai.services.candidate_resolver import CandidateResolver
from affilai.services.discovery_service import ProgramDiscoveryService
from affilai.services.link_service import LinkLifecycleService
from affilai.stores import CatalogStore, CredentialStore


@lru_cache
def get_oracle() -> OracleClient:
    return create_oracle()


@lru_cache
def get_catalog() -> CatalogStore:
    return CatalogStore()


@lru_cache
def get_credential_store() -> CredentialStore:
    return CredentialStore()


@lru_cache
def get_resolver() -> CandidateResolver:
    return CandidateResolver(get_oracle())


@lru_cache
def get_discovery_service() -> ProgramDiscoveryService:
    return ProgramDiscoveryService(get_resolver())


@lru_cache
def get_link_service() -> LinkLifecycleService:
    return LinkLifecycleService(get_discovery_service(), get_catalog(), get_credential_store())


@lru_cache
def get_ad_service() -> AdService:
    return AdService(get_resolver(), get_catalog(), get_discovery_service())
