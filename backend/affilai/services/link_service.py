"""
Link Synthesizer & Lifecycle Manager.

Builds tracking/destination URL pairs from the top discovered program, persists
them as AffiliateLink rows and owns the active -> expired -> invalid state machine.

Generation for one (product, platform) pair is single-flighted: a second caller
while one is running joins it (or is rejected with ConcurrentGenerationInProgress
when REJECT_CONCURRENT_GENERATION is set). The partial unique index on active
links backs this up across processes.
"""

import asyncio
import hashlib
import logging
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from affilai.config import get_settings
from affilai.errors import (
    AffilAIError, ConcurrentGenerationInProgress, CredentialMissing,
    LinkNotFound, NoPlatformIdentifier, ProductNotFound,
)
from affilai.models import ALLOWED_LINK_TRANSITIONS, AffiliateLink, LinkStatus
from affilai.platforms import (
    AFFILIATE_ID_PARAM, GENERIC_PLATFORM, PLATFORM_IDENTIFIER_FIELDS, UTM_MEDIUM,
    canonical_product_url, normalize_platform, platform_identifier,
    platforms_with_identifiers,
)
from affilai.schemas import BatchItemError, BatchLinkResult, ProgramCandidate
from affilai.services.discovery_service import ProgramDiscoveryService
from affilai.stores import CatalogStore, CredentialInfo, CredentialStore
from affilai.utils import slugify, utcnow

logger = logging.getLogger(__name__)
settings = get_settings()


# ══════════════════════════════════════════════════════════════════════
#  URL SYNTHESIS
# ══════════════════════════════════════════════════════════════════════

def url_specificity(url: Optional[str]) -> int:
    """Path segments + query parameters. A bare domain scores 0."""
    if not url:
        return -1
    parts = urlsplit(url)
    segments = [s for s in parts.path.split("/") if s]
    return len(segments) + len(parse_qsl(parts.query))


def choose_destination(product_url: Optional[str], program_url: Optional[str]) -> str:
    """The more specific of the two. Ties go to the product's own page."""
    if url_specificity(program_url) > url_specificity(product_url):
        return program_url
    return product_url or program_url


def tracking_ref(product_id: int, platform: str, program_name: str) -> str:
    digest = hashlib.sha1(f"{product_id}|{platform}|{program_name}".encode()).hexdigest()
    return f"afl_{digest[:12]}"


def build_tracking_url(
    destination_url: str,
    product,
    platform: str,
    program: ProgramCandidate,
    credential: Optional[CredentialInfo] = None,
) -> str:
    """
    Destination URL plus deterministic tracking parameters. The same product,
    platform, program and credential always give the same URL.
    """
    parts = urlsplit(destination_url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.update({
        "utm_source": platform,
        "utm_medium": UTM_MEDIUM.get(platform, "affiliate"),
        "utm_campaign": slugify(product.name),
        "ref": tracking_ref(product.id, platform, program.name),
    })
    if credential is not None and credential.affiliate_id:
        query[AFFILIATE_ID_PARAM.get(credential.platform, "aff_id")] = credential.affiliate_id
    return urlunsplit(parts._replace(query=urlencode(query)))


def needs_credential(program: ProgramCandidate) -> bool:
    """
    Network programs carry the account id in their tracking parameters. Official
    programs and generic links (the product's own page, no network account) do not.
    """
    if program.is_official or program.platform == GENERIC_PLATFORM:
        return False
    return settings.require_affiliate_credentials


# ══════════════════════════════════════════════════════════════════════
#  STATE MACHINE
# ══════════════════════════════════════════════════════════════════════

def next_status(current: LinkStatus, target: LinkStatus, link_id: Optional[int] = None) -> LinkStatus:
    """
    The status a link ends up in when `target` is requested. Forbidden moves are
    refused with a warning and leave the link where it was.
    """
    if current == target:
        return current
    if (current, target) not in ALLOWED_LINK_TRANSITIONS:
        logger.warning(f"Refusing link {link_id} transition {current.value} -> {target.value}")
        return current
    return target


# ══════════════════════════════════════════════════════════════════════
#  SERVICE
# ══════════════════════════════════════════════════════════════════════

class LinkLifecycleService:
    def __init__(
        self,
        discovery: ProgramDiscoveryService,
        catalog: CatalogStore,
        credentials: CredentialStore,
    ):
        self.discovery = discovery
        self.catalog = catalog
        self.credentials = credentials
        self._inflight: dict[tuple[int, str], asyncio.Task] = {}

    async def generate_link(self, product_id: int, platform: str) -> AffiliateLink:
        """
        Discover, synthesize and persist a new active link for (product, platform),
        superseding any existing active/expired one.
        """
        platform = normalize_platform(platform)
        key = (product_id, platform)
        while True:
            task = self._inflight.get(key)
            if task is None or task.done():
                break
            if settings.reject_concurrent_generation:
                raise ConcurrentGenerationInProgress(
                    f"link generation for product {product_id} on {platform} is already running",
                    product_id=product_id, platform=platform, policy="reject_concurrent_generation",
                )
            logger.info(f"Joining in-flight link generation for product {product_id} on {platform}")
            try:
                return await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
                # The leader was cancelled, not us: start over
                continue

        task = asyncio.ensure_future(self._single_flight(key))
        self._inflight[key] = task
        return await task

    async def _single_flight(self, key: tuple[int, str]) -> AffiliateLink:
        try:
            return await self._generate(*key)
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]

    async def _generate(self, product_id: int, platform: str) -> AffiliateLink:
        product = await self.catalog.get_product(product_id)
        if product is None:
            raise ProductNotFound(f"product {product_id} not found", product_id=product_id, platform=platform)
        if not platform_identifier(product, platform):
            field = PLATFORM_IDENTIFIER_FIELDS.get(platform, "identifier")
            raise NoPlatformIdentifier(
                f"product {product_id} has no {field} for {platform}",
                product_id=product_id, platform=platform, policy="platform_identifier_required",
            )

        candidates = await self.discovery.discover(product, platform)
        program = candidates[0]

        credential = await self.credentials.get_credential(program.platform)
        if credential is not None and not credential.usable:
            credential = None
        if credential is None and needs_credential(program):
            raise CredentialMissing(
                f"no credential configured for {program.platform}",
                product_id=product_id, platform=platform, policy="require_affiliate_credentials",
            )

        destination_url = choose_destination(canonical_product_url(product, platform), program.affiliate_url)
        tracking_url = build_tracking_url(destination_url, product, platform, program, credential)

        link, superseded = await self.catalog.supersede_and_insert_link(
            product_id=product.id,
            product_name=product.name,
            platform=platform,
            program_name=program.name,
            commission_rate=program.commission_rate,
            cookie_duration=program.cookie_duration,
            tracking_url=tracking_url,
            destination_url=destination_url,
        )
        if superseded:
            logger.info(
                f"Link {link.id} supersedes {', '.join(str(s.id) for s in superseded)} "
                f"for product {product_id} on {platform}"
            )
        else:
            logger.info(f"Created link {link.id} for product {product_id} on {platform} via {program.name}")
        return link

    async def refresh_link(self, link_id: int) -> AffiliateLink:
        """
        Re-run discovery for the link's platform and move the link accordingly:
        program still first -> figures refreshed; still listed -> expired;
        gone -> invalid with its old figures kept for audit.
        """
        link = await self.catalog.get_link(link_id)
        if link is None:
            raise LinkNotFound(f"link {link_id} not found")
        current = LinkStatus(link.status)
        if current == LinkStatus.INVALID:
            logger.warning(f"Link {link_id} is invalid; refresh leaves it unchanged")
            return link

        product = await self.catalog.get_product(link.product_id)
        if product is None:
            raise ProductNotFound(
                f"product {link.product_id} not found", product_id=link.product_id, platform=link.platform,
            )

        candidates = await self.discovery.discover(product, link.platform)
        top = candidates[0]

        if top.name == link.program_name:
            if current == LinkStatus.EXPIRED:
                logger.warning(
                    f"Link {link_id} program ranks first again, but expired links are never "
                    f"reactivated; generate a new link instead"
                )
                return link
            return await self._write(
                link, current,
                commission_rate=top.commission_rate,
                cookie_duration=top.cookie_duration,
            )

        still_listed = any(c.name == link.program_name for c in candidates)
        target = LinkStatus.EXPIRED if still_listed else LinkStatus.INVALID
        return await self._move(link, target)

    async def _move(self, link: AffiliateLink, target: LinkStatus) -> AffiliateLink:
        current = LinkStatus(link.status)
        status = next_status(current, target, link.id)
        if status == current:
            return link
        updated = await self._write(link, current, status=status.value)
        if updated.status == status.value:
            logger.info(f"Link {link.id} {current.value} -> {status.value}")
        return updated

    async def _write(self, link: AffiliateLink, expected: LinkStatus, **values) -> AffiliateLink:
        """
        Apply `values` only if the row is still in `expected`. Discovery runs
        between read and write, so a concurrent supersession may have moved it.
        """
        updated = await self.catalog.update_link_if_status(link.id, expected.value, updated_at=utcnow(), **values)
        if updated is not None:
            return updated
        latest = await self.catalog.get_link(link.id)
        if latest is None:
            raise LinkNotFound(f"link {link.id} not found")
        logger.warning(
            f"Link {link.id} changed from {expected.value} to {latest.status} during refresh; "
            f"leaving it as is"
        )
        return latest

    async def delete_link(self, link_id: int) -> None:
        if not await self.catalog.delete_link(link_id):
            raise LinkNotFound(f"link {link_id} not found")
        logger.info(f"Deleted link {link_id}")

    async def generate_all_links(self, product_ids: Optional[list[int]] = None) -> BatchLinkResult:
        """
        Generate a link for every (product, platform) pair the product has an
        identifier for and no active link yet. Items run concurrently up to
        BATCH_MAX_CONCURRENCY; one item's failure never aborts the rest.
        """
        result = BatchLinkResult()
        products = await self.catalog.list_products()
        if product_ids is not None:
            wanted = set(product_ids)
            found = {p.id for p in products}
            for missing in sorted(wanted - found):
                result.errors.append(BatchItemError(
                    product_id=missing, platform=None, error="ProductNotFound",
                    message=f"product {missing} not found",
                ))
            products = [p for p in products if p.id in wanted]

        active = await self.catalog.active_pairs()
        work = [
            (product.id, platform)
            for product in products
            for platform in platforms_with_identifiers(product)
            if (product.id, platform) not in active
        ]
        if not work:
            return result

        semaphore = asyncio.Semaphore(settings.batch_max_concurrency)

        async def run_one(product_id: int, platform: str):
            async with semaphore:
                try:
                    return await self.generate_link(product_id, platform)
                except AffilAIError as e:
                    logger.error(f"Batch link generation failed for product {product_id} on {platform}: {e.message}")
                    return BatchItemError(
                        product_id=product_id, platform=platform,
                        error=type(e).__name__, message=e.message, policy=e.policy,
                    )
                except Exception as e:
                    logger.error(
                        f"Batch link generation crashed for product {product_id} on {platform}: {e}",
                        exc_info=True,
                    )
                    return BatchItemError(
                        product_id=product_id, platform=platform,
                        error=type(e).__name__, message=str(e) or type(e).__name__,
                    )

        outcomes = await asyncio.gather(*(run_one(pid, platform) for pid, platform in work))
        for outcome in outcomes:
            if isinstance(outcome, BatchItemError):
                result.errors.append(outcome)
            else:
                result.created.append(outcome)
        logger.info(f"Batch generated {len(result.created)} link(s), {len(result.errors)} error(s)")
        return result
