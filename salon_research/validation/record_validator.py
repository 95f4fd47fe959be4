"""
Validates and cleans candidates produced by the extraction cascade.

Nothing is dropped silently: every rejected entry or dropped field becomes a
ValidationIssue on the outcome.
"""
import math
import re
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from salon_research.config import VALID_SERVICE_CATEGORIES
from salon_research.models import (
    CLOSED,
    WEEKDAYS,
    BusinessRecord,
    Coordinates,
    DayHours,
    Rating,
    ServiceEntry,
    ValidationIssue,
    ValidationOutcome,
)
from salon_research.validation.patterns import (
    ANNOTATIONS,
    GENERIC_TERMS,
    LONG_NAME_THRESHOLD,
    NAME_REJECTION_PATTERNS,
    OUT_OF_AREA,
    PROMPT_ECHOES,
    area_marker,
    first_match,
)

MIN_NAME_LENGTH = 3
MAX_NAME_LENGTH = 100
MIN_ADDRESS_LENGTH = 6
NUMERIC = re.compile(r"^\d+$")
HHMM = re.compile(r"^(?:[01]\d|2[0-3]):[0-5]\d$")
LIST_KEYS = ("salons", "names", "businesses")

STRING_FIELDS = {
    "description": "description",
    "primaryService": "primary_service",
    "contactNumber": "contact_number",
    "contactEmail": "contact_email",
    "instagram": "instagram",
    "website": "website",
    "bookingLink": "booking_link",
    "priceRange": "price_range",
    "placeId": "place_id",
}

_CATEGORY_LOOKUP = {c.lower(): c for c in VALID_SERVICE_CATEGORIES}


def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _dedup_key(name: str) -> str:
    return _collapse(name).lower()


def out_of_area_reason(name: str) -> Optional[str]:
    """Reason to reject `name` outright because it says it is not in the target area."""
    row = first_match(name, OUT_OF_AREA)
    return row.reason if row else None


def clean_name(name: str, target_area: Optional[str] = None) -> str:
    """
    Strip parenthetical annotations, trailing notes and ellipses from a name.

    Applied until nothing changes, so cleaning a cleaned name is a no-op.
    """
    patterns = list(ANNOTATIONS)
    if target_area:
        patterns.append(area_marker(target_area))

    cleaned = _collapse(name)
    while True:
        previous = cleaned
        for pattern in patterns:
            cleaned = pattern.sub("", cleaned)
        cleaned = _collapse(cleaned)
        if cleaned == previous:
            return cleaned


def name_rejection_reason(name: Any) -> Optional[str]:
    """Why `name` is not a plausible business name, or None if it is."""
    if not isinstance(name, str):
        return "not a string"
    trimmed = name.strip()
    if len(trimmed) < MIN_NAME_LENGTH:
        return "too short"
    if len(trimmed) > MAX_NAME_LENGTH:
        return "too long"
    if NUMERIC.match(trimmed):
        return "purely numeric"
    if not re.search(r"[A-Za-z]", trimmed):
        return "no letters"
    if trimmed.lower() in GENERIC_TERMS:
        return "generic term"
    row = first_match(trimmed, NAME_REJECTION_PATTERNS)
    if row:
        return row.reason
    if len(trimmed) > LONG_NAME_THRESHOLD:
        row = first_match(trimmed, PROMPT_ECHOES)
        if row:
            return row.reason
    return None


def _accept_name(raw: Any, target_area: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """(cleaned name, None) when plausible, else (None, reason)."""
    if not isinstance(raw, str):
        return None, "not a string"
    reason = out_of_area_reason(raw)
    if reason:
        return None, reason
    cleaned = clean_name(raw, target_area)
    reason = name_rejection_reason(cleaned)
    if reason:
        return None, reason
    return cleaned, None


def validate_name_list(candidate: Any, target_area: Optional[str] = None) -> ValidationOutcome:
    """
    Clean and validate a candidate list of business names.

    Args:
        candidate: List of strings and/or objects with a "name", or an object
            wrapping such a list.
        target_area: Suburb the names should belong to.

    Returns:
        ValidationOutcome: accepted if at least one name survives; cleaned is the
        de-duplicated list of names in first-occurrence order.
    """
    issues: List[ValidationIssue] = []

    if isinstance(candidate, dict):
        issues.append(ValidationIssue("list", "data is not an array"))
        for key in LIST_KEYS:
            if isinstance(candidate.get(key), list):
                candidate = candidate[key]
                break
        else:
            if candidate.get("name"):
                candidate = [candidate]
            else:
                issues.append(ValidationIssue("list", "invalid data structure"))
                return ValidationOutcome(False, [], issues)
    elif isinstance(candidate, str):
        issues.append(ValidationIssue("list", "data is not an array"))
        candidate = [line.strip() for line in candidate.splitlines() if line.strip()]
    elif not isinstance(candidate, list):
        issues.append(ValidationIssue("list", "invalid data structure"))
        return ValidationOutcome(False, [], issues)

    cleaned: List[str] = []
    seen = set()
    duplicates = 0
    for item in candidate:
        raw = item.get("name") if isinstance(item, dict) else item
        if not isinstance(raw, str):
            issues.append(ValidationIssue(repr(item), "rejected non-string item"))
            continue
        name, reason = _accept_name(raw, target_area)
        if name is None:
            issues.append(ValidationIssue(raw, reason))
            continue
        key = _dedup_key(name)
        if key in seen:
            duplicates += 1
            continue
        seen.add(key)
        cleaned.append(name)

    if duplicates:
        issues.append(ValidationIssue("list", f"removed {duplicates} duplicates"))

    accepted = len(cleaned) > 0
    if not accepted:
        issues.append(ValidationIssue("list", "no valid salon names found after cleaning"))
    elif len(cleaned) == 1:
        issues.append(ValidationIssue("list", "only 1 salon found - may need to retry with a different model"))

    logger.debug(f"🧹 Name list validation kept {len(cleaned)}/{len(candidate)} entries ({len(issues)} issues)")
    return ValidationOutcome(accepted, cleaned, issues)


def _clean_string(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed or NUMERIC.match(trimmed):
        return None
    return trimmed


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _clean_string_list(values: Any, subject: str, issues: List[ValidationIssue]) -> List[str]:
    if not isinstance(values, list):
        issues.append(ValidationIssue(subject, "not an array"))
        return []
    cleaned: List[str] = []
    for value in values:
        text = _clean_string(value)
        if text is None:
            issues.append(ValidationIssue(subject, f"dropped entry {value!r}"))
            continue
        cleaned.append(text)
    return cleaned


def _clean_coordinates(value: Any) -> Optional[Coordinates]:
    if not isinstance(value, dict):
        return None
    lat = _to_float(value.get("latitude", value.get("lat")))
    lng = _to_float(value.get("longitude", value.get("lng")))
    if lat is None or lng is None:
        return None
    if not (-90 <= lat <= 90 and -180 <= lng <= 180):
        return None
    return Coordinates(latitude=lat, longitude=lng)


def _clean_rating(value: Any, issues: List[ValidationIssue]) -> Optional[Rating]:
    if not isinstance(value, dict):
        issues.append(ValidationIssue("rating", "invalid rating data"))
        return None
    stars = _to_float(value.get("stars"))
    if stars is None or not 0 <= stars <= 5:
        issues.append(ValidationIssue("rating", "invalid rating data"))
        return None
    reviewers = _to_float(value.get("numberOfReviewers", value.get("reviews")))
    if reviewers is None or reviewers < 0:
        if value.get("numberOfReviewers") is not None:
            issues.append(ValidationIssue("rating", "invalid review count, using 0"))
        reviewers = 0
    return Rating(stars=stars, number_of_reviewers=int(reviewers))


def _clean_services(values: Any, issues: List[ValidationIssue]) -> List[ServiceEntry]:
    if not isinstance(values, list):
        issues.append(ValidationIssue("services", "not an array"))
        return []
    services: List[ServiceEntry] = []
    for value in values:
        if isinstance(value, str):
            item, price = _clean_string(value), None
        elif isinstance(value, dict):
            item = _clean_string(value.get("item") or value.get("name"))
            raw_price = value.get("price")
            price = _to_float(raw_price)
            if raw_price not in (None, "") and (price is None or price < 0):
                issues.append(ValidationIssue("services", f"dropped invalid price for {item}"))
                price = None
        else:
            item, price = None, None
        if item is None:
            issues.append(ValidationIssue("services", f"dropped entry {value!r}"))
            continue
        services.append(ServiceEntry(item=item, price=price))
    return services


def _clean_categories(values: Any, issues: List[ValidationIssue]) -> List[str]:
    categories: List[str] = []
    for value in _clean_string_list(values, "serviceCategories", issues):
        canonical = _CATEGORY_LOOKUP.get(value.lower())
        if canonical is None:
            issues.append(ValidationIssue("serviceCategories", f"unknown category {value}"))
        elif canonical not in categories:
            categories.append(canonical)
    return categories


def _clean_day(value: Any) -> Optional[DayHours]:
    if isinstance(value, str) and value.strip().lower() == CLOSED:
        return DayHours()
    if not isinstance(value, dict):
        return None
    if value.get("isClosed") is True:
        return DayHours()
    opens = str(value.get("open", "")).strip().lower()
    closes = str(value.get("close", "")).strip().lower()
    if CLOSED in (opens, closes):
        return DayHours()
    if HHMM.match(opens) and HHMM.match(closes):
        return DayHours(open=opens, close=closes)
    return None


def clean_business_hours(value: Any, issues: List[ValidationIssue]) -> Optional[Dict[str, DayHours]]:
    """Normalize hours to all seven days; unknown days count as closed."""
    if not isinstance(value, dict):
        issues.append(ValidationIssue("businessHours", "not an object"))
        return None
    source = {str(k).strip().lower(): v for k, v in value.items()}
    hours: Dict[str, DayHours] = {}
    parsed = 0
    for day in WEEKDAYS:
        day_hours = _clean_day(source.get(day))
        if day_hours is None:
            if day in source:
                issues.append(ValidationIssue("businessHours", f"invalid hours for {day}, treating as closed"))
            day_hours = DayHours()
        else:
            parsed += 1
        hours[day] = day_hours
    if parsed == 0:
        issues.append(ValidationIssue("businessHours", "no valid days"))
        return None
    return hours


def validate_record(candidate: Any, target_area: Optional[str] = None) -> ValidationOutcome:
    """
    Clean and validate a single business record.

    The record is accepted when its name is plausible, however many optional
    fields had to be dropped.
    """
    issues: List[ValidationIssue] = []
    if not isinstance(candidate, dict):
        issues.append(ValidationIssue("record", "not an object"))
        return ValidationOutcome(False, None, issues)

    raw_name = candidate.get("name")
    name, reason = _accept_name(raw_name, target_area)
    if name is None:
        issues.append(ValidationIssue("name", f"invalid or missing salon name ({reason})"))
        return ValidationOutcome(False, None, issues)

    record = BusinessRecord(name=name)

    address = candidate.get("address")
    if address not in (None, ""):
        cleaned_address = _clean_string(address)
        if cleaned_address and len(cleaned_address) >= MIN_ADDRESS_LENGTH:
            record.address = cleaned_address
        else:
            issues.append(ValidationIssue("address", "invalid address format"))

    if candidate.get("coordinates"):
        record.coordinates = _clean_coordinates(candidate["coordinates"])
        if record.coordinates is None:
            issues.append(ValidationIssue("coordinates", "invalid coordinates"))

    if candidate.get("rating"):
        record.rating = _clean_rating(candidate["rating"], issues)

    if candidate.get("services"):
        record.services = _clean_services(candidate["services"], issues)

    if candidate.get("serviceCategories"):
        record.service_categories = _clean_categories(candidate["serviceCategories"], issues)

    if candidate.get("thumbnails"):
        record.photos = _clean_string_list(candidate["thumbnails"], "thumbnails", issues)

    if candidate.get("localThumbnails"):
        record.local_photos = _clean_string_list(candidate["localThumbnails"], "localThumbnails", issues)

    for key, attr in STRING_FIELDS.items():
        value = candidate.get(key)
        if value in (None, ""):
            continue
        cleaned_value = _clean_string(value)
        if cleaned_value is None:
            issues.append(ValidationIssue(key, "dropped empty or numeric value"))
            continue
        setattr(record, attr, cleaned_value)

    if candidate.get("businessHours"):
        record.business_hours = clean_business_hours(candidate["businessHours"], issues)

    if issues:
        logger.debug(f"⚠️ Validation warnings for {name}: {[str(i) for i in issues]}")
    return ValidationOutcome(True, record, issues)
