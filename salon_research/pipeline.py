"""
Caller-facing research operations.

caller -> request governor -> raw text -> extraction cascade -> validator
       -> enrichment merger & cache -> result
"""
from dataclasses import replace
from typing import Callable, List, Optional

from loguru import logger

from salon_research.clients import PerplexityClient, PlacesClient, ThumbnailClient
from salon_research.config import DEFAULT_MODEL
from salon_research.enrichment.cache import RecordCache
from salon_research.enrichment.merger import merge_enrichment
from salon_research.errors import RetryableError, ValidationRejectedError
from salon_research.extraction.cascade import extract
from salon_research.models import (
    BusinessIdentity,
    BusinessRecord,
    DetailResearchResult,
    ListResearchResult,
    Shape,
    ValidationIssue,
)
from salon_research.prompts import build_detail_request, build_list_request
from salon_research.validation.record_validator import validate_name_list, validate_record

RetryCallback = Callable[[RetryableError], None]

_default_cache: Optional[RecordCache] = None


def get_default_cache() -> RecordCache:
    global _default_cache
    if _default_cache is None:
        _default_cache = RecordCache()
    return _default_cache


async def research_list(
    suburb: str,
    model: str = DEFAULT_MODEL,
    skip_cache: bool = False,
    on_retry: Optional[RetryCallback] = None,
    raise_on_retry: bool = False,
    cache: Optional[RecordCache] = None,
) -> ListResearchResult:
    """
    Find the business names of one suburb.

    Raises:
        RetryableError: Only with raise_on_retry or a raising on_retry.
        TerminalRequestError: The upstream call failed for good.
        UnrecoverableParseError: No strategy recovered a list.
        ValidationRejectedError: No plausible name survived validation.
    """
    cache = cache or get_default_cache()
    if not skip_cache:
        cached = cache.get_list(suburb, model)
        if cached:
            logger.info(f"📁 Using cached list for {suburb} ({len(cached)} salons)")
            return ListResearchResult(suburb=suburb, names=cached, from_cache=True, model=model)

    client = PerplexityClient()
    raw = await client.complete(build_list_request(suburb, model), on_retry=on_retry, raise_on_retry=raise_on_retry)
    result = extract(raw, Shape.NAME_LIST)
    candidate = result.value if result.kind is Shape.NAME_LIST else [result.value]

    outcome = validate_name_list(candidate, target_area=suburb)
    if not outcome.accepted:
        logger.error(f"❌ Salon list validation failed for {suburb}: {[str(i) for i in outcome.issues]}")
        raise ValidationRejectedError("salon list", outcome.issues)
    if outcome.issues:
        logger.warning(f"⚠️ Salon list validation warnings for {suburb}: {[str(i) for i in outcome.issues]}")

    cache.save_list(suburb, outcome.cleaned, model)
    logger.info(f"✅ Found {len(outcome.cleaned)} salons in {suburb} via {result.strategy}")
    return ListResearchResult(
        suburb=suburb,
        names=outcome.cleaned,
        issues=outcome.issues,
        strategy=result.strategy,
        model=model,
    )


def _record_candidate(value, identity: BusinessIdentity):
    """A record from a list-shaped response: the entry naming the business, else the first object."""
    objects = [item for item in value if isinstance(item, dict) and item.get("name")]
    for item in objects:
        if str(item["name"]).strip().lower() == identity.name.strip().lower():
            return item
    return objects[0] if objects else None


def _needs_enrichment(record: BusinessRecord, from_cache: bool, force_enrich: bool) -> bool:
    return not from_cache or force_enrich or record.coordinates is None


async def _enrich(record: BusinessRecord, suburb: str, places: PlacesClient):
    place = await places.find_place(f"{record.name} salon {suburb}", expected_name=record.name)
    if place is None and record.address:
        place = await places.find_place(f"{record.name} {record.address}", expected_name=record.name)
    return merge_enrichment(record, place)


async def research_details(
    identity: BusinessIdentity,
    suburb: str,
    model: str = DEFAULT_MODEL,
    skip_cache: bool = False,
    force_enrich: bool = False,
    on_retry: Optional[RetryCallback] = None,
    raise_on_retry: bool = False,
    cache: Optional[RecordCache] = None,
    thumbnails: Optional[ThumbnailClient] = None,
) -> DetailResearchResult:
    """
    Research one business: cache or upstream, then Places enrichment and
    photo processing. Every gain of trusted fields is written back to the cache.

    Args:
        identity: Business name and, when known, its place id.
        suburb: Suburb the business is in.
        model: Upstream model name; part of the cache key.
        skip_cache: Ignore any cached record.
        force_enrich: Enrich and process photos even for a complete cached record.
        on_retry: Called with each interim RetryableError.
        raise_on_retry: Surface RetryableError instead of waiting.
        cache: Cache to use; defaults to the file-backed cache.
        thumbnails: Photo-processing client; defaults to the singleton.

    Returns:
        DetailResearchResult: The record, its issues and where it came from.
    """
    cache = cache or get_default_cache()
    issues: List[ValidationIssue] = []
    strategy = None
    record = None if skip_cache else cache.get_details(identity.place_id, identity.name, model)
    from_cache = record is not None

    if record is None:
        client = PerplexityClient()
        raw = await client.complete(
            build_detail_request(identity.name, suburb, model),
            on_retry=on_retry,
            raise_on_retry=raise_on_retry,
        )
        result = extract(raw, Shape.RECORD)
        strategy = result.strategy
        candidate = result.value if result.kind is Shape.RECORD else _record_candidate(result.value, identity)

        outcome = validate_record(candidate, target_area=suburb)
        if not outcome.accepted:
            logger.error(f"❌ Salon details validation failed for {identity.name}: {[str(i) for i in outcome.issues]}")
            raise ValidationRejectedError("salon details", outcome.issues)
        record = outcome.cleaned
        issues = outcome.issues
        if identity.place_id and not record.place_id:
            record.place_id = identity.place_id
        cache.save_details(record, model, identity.place_id, identity.name)
    else:
        logger.info(f"📁 Using cached details for {identity.name}")

    enriched_fields: List[str] = []
    if _needs_enrichment(record, from_cache, force_enrich):
        record, enriched_fields = await _enrich(record, suburb, PlacesClient())
        if enriched_fields:
            cache.save_details(record, model, identity.place_id, identity.name)
    else:
        logger.debug(f"⏭️ Cached details for {identity.name} are complete, skipping enrichment")

    thumbnails = thumbnails or ThumbnailClient()
    if record.photos and (not from_cache or force_enrich or not record.local_photos):
        local_photos = await thumbnails.process(record)
        if local_photos and local_photos != record.local_photos:
            record = replace(record, local_photos=local_photos)
            enriched_fields.append("local_photos")
            cache.save_details(record, model, identity.place_id, identity.name)

    return DetailResearchResult(
        record=record,
        issues=issues,
        from_cache=from_cache,
        strategy=strategy,
        enriched_fields=enriched_fields,
        model=model,
    )
