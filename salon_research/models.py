"""
Typed data models for the salon research pipeline.
All data structures used throughout the codebase should be defined here.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from salon_research.config import MAX_TOKENS, TEMPERATURE

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
CLOSED = "closed"


class Shape(str, Enum):
    """What the caller expects the upstream text to contain."""
    RECORD = "record"
    NAME_LIST = "name_list"

    @property
    def opposite(self) -> "Shape":
        return Shape.NAME_LIST if self is Shape.RECORD else Shape.RECORD


@dataclass(frozen=True)
class CompletionRequest:
    """Immutable chat-completion request sent through the request governor."""
    messages: Tuple[Dict[str, str], ...]
    model: str
    temperature: float = TEMPERATURE
    max_tokens: int = MAX_TOKENS

    @classmethod
    def build(cls, system: str, user: str, model: str) -> "CompletionRequest":
        return cls(
            messages=(
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ),
            model=model,
        )

    def to_kwargs(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [dict(m) for m in self.messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }


@dataclass
class ExtractionResult:
    """Structure recovered from raw text, tagged with the strategy that produced it."""
    kind: Shape
    value: Union[Dict[str, Any], List[Any]]
    strategy: str


@dataclass
class Coordinates:
    latitude: float
    longitude: float


@dataclass
class Rating:
    stars: float
    number_of_reviewers: int = 0


@dataclass
class ServiceEntry:
    item: str
    price: Optional[float] = None


@dataclass
class DayHours:
    """Opening hours for one day; both fields are "closed" on closed days."""
    open: str = CLOSED
    close: str = CLOSED

    @property
    def is_closed(self) -> bool:
        return self.open == CLOSED or self.close == CLOSED


@dataclass
class BusinessRecord:
    """Canonical output unit: one validated business."""
    name: str
    address: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    description: Optional[str] = None
    primary_service: Optional[str] = None
    service_categories: List[str] = field(default_factory=list)
    services: List[ServiceEntry] = field(default_factory=list)
    rating: Optional[Rating] = None
    contact_number: Optional[str] = None
    contact_email: Optional[str] = None
    instagram: Optional[str] = None
    website: Optional[str] = None
    booking_link: Optional[str] = None
    price_range: Optional[str] = None
    business_hours: Optional[Dict[str, DayHours]] = None
    photos: List[str] = field(default_factory=list)  # Ordered photo references (URLs)
    local_photos: List[str] = field(default_factory=list)
    place_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the camelCase keys the upstream service produces."""
        data: Dict[str, Any] = {"name": self.name}
        if self.address:
            data["address"] = self.address
        if self.coordinates:
            data["coordinates"] = {
                "latitude": self.coordinates.latitude,
                "longitude": self.coordinates.longitude,
            }
        if self.description:
            data["description"] = self.description
        if self.primary_service:
            data["primaryService"] = self.primary_service
        if self.service_categories:
            data["serviceCategories"] = list(self.service_categories)
        if self.services:
            data["services"] = [{"item": s.item, "price": s.price} for s in self.services]
        if self.rating:
            data["rating"] = {
                "stars": self.rating.stars,
                "numberOfReviewers": self.rating.number_of_reviewers,
            }
        for key, value in (
            ("contactNumber", self.contact_number),
            ("contactEmail", self.contact_email),
            ("instagram", self.instagram),
            ("website", self.website),
            ("bookingLink", self.booking_link),
            ("priceRange", self.price_range),
        ):
            if value:
                data[key] = value
        if self.business_hours:
            data["businessHours"] = {
                day: {"open": hours.open, "close": hours.close}
                for day, hours in self.business_hours.items()
            }
        if self.photos:
            data["thumbnails"] = list(self.photos)
        if self.local_photos:
            data["localThumbnails"] = list(self.local_photos)
        if self.place_id:
            data["placeId"] = self.place_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BusinessRecord":
        """Rebuild a record previously written with to_dict (e.g. from the cache)."""
        coords = data.get("coordinates")
        rating = data.get("rating")
        hours = data.get("businessHours")
        return cls(
            name=data["name"],
            address=data.get("address"),
            coordinates=Coordinates(coords["latitude"], coords["longitude"]) if coords else None,
            description=data.get("description"),
            primary_service=data.get("primaryService"),
            service_categories=list(data.get("serviceCategories") or []),
            services=[
                ServiceEntry(item=s["item"], price=s.get("price"))
                for s in data.get("services") or []
            ],
            rating=Rating(rating["stars"], rating.get("numberOfReviewers", 0)) if rating else None,
            contact_number=data.get("contactNumber"),
            contact_email=data.get("contactEmail"),
            instagram=data.get("instagram"),
            website=data.get("website"),
            booking_link=data.get("bookingLink"),
            price_range=data.get("priceRange"),
            business_hours={
                day: DayHours(h.get("open", CLOSED), h.get("close", CLOSED))
                for day, h in hours.items()
            } if hours else None,
            photos=list(data.get("thumbnails") or []),
            local_photos=list(data.get("localThumbnails") or []),
            place_id=data.get("placeId"),
        )


@dataclass
class BusinessIdentity:
    """How a caller names the business it wants details for."""
    name: str
    place_id: Optional[str] = None


@dataclass
class PlaceRecord:
    """Best-match record returned by the enrichment source."""
    place_id: Optional[str]
    name: Optional[str] = None
    formatted_address: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    rating: Optional[Rating] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    business_hours: Optional[Dict[str, DayHours]] = None
    photos: List[str] = field(default_factory=list)


@dataclass
class ValidationIssue:
    """A dropped field or rejected entry, reported instead of silently discarded."""
    subject: str
    reason: str

    def __str__(self) -> str:
        return f"{self.subject}: {self.reason}"


@dataclass
class ValidationOutcome:
    accepted: bool
    cleaned: Any
    issues: List[ValidationIssue] = field(default_factory=list)


@dataclass
class CacheEntry:
    """Persisted, keyed unit combining a validated payload and its write timestamp."""
    key: str
    kind: str  # "list" or "details"
    payload: Any
    timestamp: float
    model: Optional[str] = None
    label: Optional[str] = None  # Suburb or business name
    place_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "kind": self.kind,
            "payload": self.payload,
            "timestamp": self.timestamp,
            "model": self.model,
            "label": self.label,
            "placeId": self.place_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        return cls(
            key=data["key"],
            kind=data["kind"],
            payload=data["payload"],
            timestamp=float(data["timestamp"]),
            model=data.get("model"),
            label=data.get("label"),
            place_id=data.get("placeId"),
        )


@dataclass
class ListResearchResult:
    """Final result of researching the businesses of one suburb."""
    suburb: str
    names: List[str]
    issues: List[ValidationIssue] = field(default_factory=list)
    from_cache: bool = False
    strategy: Optional[str] = None
    model: Optional[str] = None


@dataclass
class DetailResearchResult:
    """Final result of researching one business."""
    record: BusinessRecord
    issues: List[ValidationIssue] = field(default_factory=list)
    from_cache: bool = False
    strategy: Optional[str] = None
    enriched_fields: List[str] = field(default_factory=list)
    model: Optional[str] = None
