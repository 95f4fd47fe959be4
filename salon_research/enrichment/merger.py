"""
Merge a Places match into an existing business record.
"""
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from salon_research.models import BusinessRecord, PlaceRecord

# Record attribute -> PlaceRecord attribute, filled only when the record lacks it
FILL_IF_ABSENT = (
    ("address", "formatted_address"),
    ("coordinates", "coordinates"),
    ("rating", "rating"),
    ("contact_number", "phone"),
    ("website", "website"),
    ("business_hours", "business_hours"),
    ("place_id", "place_id"),
)


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def merge_enrichment(
    existing: BusinessRecord, place: Optional[PlaceRecord]
) -> Tuple[BusinessRecord, List[str]]:
    """
    Combine `existing` with the enrichment source's best match.

    Present fields are never overwritten, with one exception: photos are
    replaced wholesale by the place's photos whenever it has any. Merging the
    same place twice changes nothing the second time.

    Args:
        existing: Validated record; not mutated.
        place: Best match from the enrichment source, or None.

    Returns:
        Tuple[BusinessRecord, List[str]]: Merged record and the names of the
        fields that changed.
    """
    if place is None:
        return existing, []

    changes: Dict[str, Any] = {}
    for attr, source in FILL_IF_ABSENT:
        value = getattr(place, source)
        if _is_empty(getattr(existing, attr)) and not _is_empty(value):
            changes[attr] = value

    if place.photos and list(place.photos) != list(existing.photos):
        changes["photos"] = list(place.photos)

    if not changes:
        logger.debug(f"🔁 Enrichment added nothing new for {existing.name}")
        return existing, []

    logger.debug(f"🧩 Enriched {existing.name} with {sorted(changes)}")
    return replace(existing, **changes), list(changes)
