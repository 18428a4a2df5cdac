"""
RFP Monitor

Scans a company's procurement sources for new opportunities:

1. Scrape each active source to markdown (Firecrawl)
2. Extract listings from the page (LLM)
3. Drop listings already discovered or already in the RFP pipeline
4. Score each new listing for relevance (LLM)
5. Store listings that meet the company's minimum score
"""

import asyncio
import logging
import uuid
from datetime import datetime, time, timezone
from typing import Optional, List, Dict, Any, Tuple, Callable, Awaitable, Iterable

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from database.models import DiscoveredRfp, Rfp, RfpMonitoringRule, RfpSource
from schemas.rfp import RfpListing, RfpScore, DEFAULT_SCORE
from services.errors import IntegrationNotConfigured, UpstreamError

logger = logging.getLogger("ordino.services.rfp_monitor")

PIPELINE_PREFIX = "Already in pipeline. "

Scraper = Callable[[str], Awaitable[Optional[str]]]
Extractor = Callable[[RfpSource, str], Awaitable[List[RfpListing]]]
Scorer = Callable[[RfpListing, Optional[RfpMonitoringRule]], Awaitable[RfpScore]]


# ============================================================================
# Firecrawl
# ============================================================================

class FirecrawlClient:
    """Minimal Firecrawl scrape client."""

    def __init__(self, api_key: Optional[str] = None, api_url: Optional[str] = None, timeout: float = 60.0):
        self.api_key = api_key or settings.firecrawl_api_key
        self.api_url = api_url or settings.firecrawl_api_url
        self.timeout = timeout

    async def scrape(self, url: str) -> Optional[str]:
        """Return the page as markdown, or None when Firecrawl has nothing for it."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.api_url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={
                        "url": url,
                        "formats": ["markdown"],
                        "onlyMainContent": True,
                        "waitFor": 3000,
                    }
                )
        except httpx.HTTPError as e:
            logger.error(f"Firecrawl fetch error for {url}: {e}")
            return None

        if response.status_code != 200:
            logger.error(f"Firecrawl error for {url}: {response.status_code} - {response.text[:500]}")
            return None

        data = response.json()
        return (data.get("data") or {}).get("markdown") or data.get("markdown")


# ============================================================================
# Pipeline helpers
# ============================================================================

def normalize(value: Optional[str]) -> str:
    return (value or "").lower().strip()


def dedup_listings(
    candidates: Iterable[Tuple[RfpSource, RfpListing]],
    existing_urls: set,
    existing_titles: set
) -> List[Tuple[RfpSource, RfpListing]]:
    """
    Drop listings whose URL or normalized title is already known.

    Listings repeated within the same scan are kept once.
    """
    urls = set(existing_urls)
    titles = set(existing_titles)
    fresh = []
    for source, listing in candidates:
        title = normalize(listing.title)
        if listing.url and listing.url in urls:
            continue
        if title in titles:
            continue
        fresh.append((source, listing))
        titles.add(title)
        if listing.url:
            urls.add(listing.url)
    return fresh


def build_discovered_rfp(
    company_id: uuid.UUID,
    source: RfpSource,
    listing: RfpListing,
    score: RfpScore,
    pipeline_numbers: Dict[str, uuid.UUID]
) -> DiscoveredRfp:
    """A DiscoveredRfp row, linked to the pipeline RFP sharing its number if any."""
    matched_rfp_id = pipeline_numbers.get(normalize(listing.rfp_number)) if listing.rfp_number else None
    reason = score.relevance_reason
    if matched_rfp_id:
        reason = f"{PIPELINE_PREFIX}{reason}"

    return DiscoveredRfp(
        company_id=company_id,
        source_id=source.id,
        title=listing.title,
        rfp_number=listing.rfp_number,
        issuing_agency=listing.issuing_agency or source.source_name,
        due_date=(
            datetime.combine(listing.due_date, time.min, tzinfo=timezone.utc)
            if listing.due_date else None
        ),
        original_url=listing.url,
        pdf_url=listing.pdf_url,
        relevance_score=score.relevance_score,
        relevance_reason=reason,
        service_tags=score.service_tags,
        estimated_value=score.estimated_value,
        status="reviewing" if matched_rfp_id else "new",
        rfp_id=matched_rfp_id
    )


# ============================================================================
# Default pipeline stages
# ============================================================================

async def _extract_with_llm(source: RfpSource, page: str) -> List[RfpListing]:
    from agents.rfp_extraction_agent import extract_listings

    return await asyncio.to_thread(
        extract_listings,
        source.source_name,
        source.source_url,
        page[:settings.rfp_page_char_limit]
    )


async def _score_with_llm(listing: RfpListing, rules: Optional[RfpMonitoringRule]) -> RfpScore:
    from agents.rfp_scoring_agent import score_listing

    return await asyncio.to_thread(
        score_listing,
        listing,
        rules.keyword_include if rules else None,
        rules.keyword_exclude if rules else None,
        rules is not None
    )


# ============================================================================
# Queries
# ============================================================================

async def get_active_rule(db: AsyncSession, company_id: uuid.UUID) -> Optional[RfpMonitoringRule]:
    result = await db.execute(
        select(RfpMonitoringRule)
        .where(RfpMonitoringRule.company_id == company_id, RfpMonitoringRule.active.is_(True))
        .order_by(RfpMonitoringRule.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _known_rfps(db: AsyncSession, company_id: uuid.UUID) -> Tuple[set, set, Dict[str, uuid.UUID]]:
    """Known discovered URLs, known titles and pipeline RFP numbers."""
    urls, titles = set(), set()
    numbers: Dict[str, uuid.UUID] = {}

    result = await db.execute(
        select(DiscoveredRfp.original_url, DiscoveredRfp.title)
        .where(DiscoveredRfp.company_id == company_id)
    )
    for url, title in result.all():
        if url:
            urls.add(url)
        if title:
            titles.add(normalize(title))

    result = await db.execute(
        select(Rfp.id, Rfp.rfp_number, Rfp.title).where(Rfp.company_id == company_id)
    )
    for rfp_id, rfp_number, title in result.all():
        if rfp_number:
            numbers[normalize(rfp_number)] = rfp_id
        if title:
            titles.add(normalize(title))

    return urls, titles, numbers


# ============================================================================
# Scan
# ============================================================================

async def scan_company(
    db: AsyncSession,
    company_id: uuid.UUID,
    scrape: Optional[Scraper] = None,
    extract: Optional[Extractor] = None,
    score: Optional[Scorer] = None
) -> Dict[str, Any]:
    """
    Scan every active source for a company.

    Returns new_count, total_scanned, sources_checked and, when any source
    failed, source_errors.
    """
    result = await db.execute(
        select(RfpSource).where(RfpSource.company_id == company_id, RfpSource.active.is_(True))
    )
    sources = list(result.scalars().all())
    if not sources:
        return {
            "new_count": 0,
            "total_scanned": 0,
            "sources_checked": 0,
            "message": "No active sources configured.",
        }

    if scrape is None:
        if not settings.firecrawl_api_key:
            raise IntegrationNotConfigured("FIRECRAWL_API_KEY not configured.")
        scrape = FirecrawlClient().scrape
    if extract is None or score is None:
        if not settings.active_api_key:
            raise IntegrationNotConfigured("LLM API key not configured.")
    extract = extract or _extract_with_llm
    score = score or _score_with_llm

    rules = await get_active_rule(db, company_id)
    min_score = rules.min_relevance_score if rules else settings.default_min_relevance_score

    candidates: List[Tuple[RfpSource, RfpListing]] = []
    source_errors: List[Dict[str, str]] = []
    total_scanned = 0

    for source in sources:
        logger.info(f"Scraping {source.source_name}: {source.source_url}")
        page = await scrape(source.source_url)
        if not page:
            source_errors.append({"source": source.source_name, "error": "Firecrawl returned no content"})
            continue

        try:
            listings = await extract(source, page)
        except UpstreamError as e:
            source_errors.append({"source": source.source_name, "error": f"AI error: {e.status_code}"})
            if e.is_quota_error:
                break
            continue
        except ValueError as e:
            source_errors.append({"source": source.source_name, "error": f"JSON parse error: {e}"})
            continue

        logger.info(f"Found {len(listings)} listings from {source.source_name}")
        total_scanned += len(listings)
        candidates.extend((source, listing) for listing in listings)
        source.last_checked_at = datetime.now(timezone.utc)

    await db.commit()

    new_count = 0
    if candidates:
        urls, titles, numbers = await _known_rfps(db, company_id)
        fresh = dedup_listings(candidates, urls, titles)
        logger.info(f"{len(fresh)} new listings after dedup (from {len(candidates)} total)")

        for source, listing in fresh:
            try:
                listing_score = await score(listing, rules)
            except UpstreamError as e:
                if e.is_quota_error:
                    logger.warning("AI quota reached, stopping relevance scoring")
                    break
                listing_score = DEFAULT_SCORE.model_copy()

            if listing_score.relevance_score < min_score:
                logger.info(
                    f'Skipped "{listing.title}" (score {listing_score.relevance_score} < {min_score})'
                )
                continue

            db.add(build_discovered_rfp(company_id, source, listing, listing_score, numbers))
            new_count += 1

        await db.commit()

    summary: Dict[str, Any] = {
        "new_count": new_count,
        "total_scanned": total_scanned,
        "sources_checked": len(sources),
    }
    if source_errors:
        summary["source_errors"] = source_errors

    logger.info(f"RFP scan for company {company_id}: {summary}")
    return summary


async def companies_with_active_sources(db: AsyncSession) -> List[uuid.UUID]:
    result = await db.execute(
        select(RfpSource.company_id).where(RfpSource.active.is_(True)).distinct()
    )
    return list(result.scalars().all())
