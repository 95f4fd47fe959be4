import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from salon_research.config import DEFAULT_MODEL
from salon_research.enrichment.cache import MemoryCacheStorage, RecordCache
from salon_research.errors import RetryableError, TerminalRequestError, ValidationRejectedError
from salon_research.models import BusinessIdentity, BusinessRecord, Coordinates, PlaceRecord, Rating
from salon_research.pipeline import research_details, research_list

DETAIL_RESPONSE = "<think>Searching fresha for the salon...</think>\n" + json.dumps({
    "name": "Glow Day Spa",
    "address": "12 King St, Newtown NSW 2042",
    "description": "Calm day spa",
    "serviceCategories": ["Spa", "Skin"],
    "services": [{"item": "Express Facial", "price": 68}],
    "contactNumber": "(02) 9000 0000",
    "thumbnails": ["https://fresha.com/glow.jpg"],
})


def mock_perplexity(mock_cls, text=None, side_effect=None) -> MagicMock:
    instance = MagicMock()
    instance.complete = AsyncMock(return_value=text, side_effect=side_effect)
    mock_cls.return_value = instance
    return instance


def mock_places(mock_cls, place=None) -> MagicMock:
    instance = MagicMock()
    instance.find_place = AsyncMock(return_value=place)
    mock_cls.return_value = instance
    return instance


def mock_thumbnails(paths=None) -> MagicMock:
    thumbnails = MagicMock()
    thumbnails.process = AsyncMock(return_value=paths)
    return thumbnails


@pytest.mark.asyncio
async def test_research_list_strips_reasoning_and_rejects_markers():
    cache = RecordCache(MemoryCacheStorage())

    with patch("salon_research.pipeline.PerplexityClient") as mock_client:
        client = mock_perplexity(mock_client, '<think>reasoning...</think>\n["Bella Hair", "1"]')

        result = await research_list("Newtown", cache=cache)
        cached = await research_list("Newtown", cache=cache)

    assert result.names == ["Bella Hair"]
    assert result.strategy == "strip_reasoning_wrapper"
    assert result.from_cache is False
    assert any(issue.subject == "1" for issue in result.issues)
    assert cached.from_cache is True
    assert cached.names == ["Bella Hair"]
    assert client.complete.await_count == 1
    assert cache.get_list("Newtown", DEFAULT_MODEL) == ["Bella Hair"]


@pytest.mark.asyncio
async def test_research_list_skip_cache_calls_upstream_again():
    cache = RecordCache(MemoryCacheStorage())
    cache.save_list("Newtown", ["Old Salon Name"], DEFAULT_MODEL)

    with patch("salon_research.pipeline.PerplexityClient") as mock_client:
        mock_perplexity(mock_client, '["Bella Hair Studio", "Glow Day Spa"]')
        result = await research_list("Newtown", skip_cache=True, cache=cache)

    assert result.names == ["Bella Hair Studio", "Glow Day Spa"]
    assert cache.get_list("Newtown", DEFAULT_MODEL) == ["Bella Hair Studio", "Glow Day Spa"]


@pytest.mark.asyncio
async def test_research_list_rejects_when_nothing_plausible():
    cache = RecordCache(MemoryCacheStorage())

    with patch("salon_research.pipeline.PerplexityClient") as mock_client:
        mock_perplexity(mock_client, '["1", "Loading"]')
        with pytest.raises(ValidationRejectedError):
            await research_list("Newtown", cache=cache)

    assert cache.get_list("Newtown", DEFAULT_MODEL) is None


@pytest.mark.asyncio
async def test_retryable_and_terminal_errors_propagate_separately():
    cache = RecordCache(MemoryCacheStorage())
    retry = RetryableError("Rate limit hit", 1, 5, 2.0, 429)

    with patch("salon_research.pipeline.PerplexityClient") as mock_client:
        mock_perplexity(mock_client, side_effect=retry)
        with pytest.raises(RetryableError) as exc_info:
            await research_list("Newtown", raise_on_retry=True, cache=cache)
        assert exc_info.value.attempt == 1

        mock_perplexity(mock_client, side_effect=TerminalRequestError("Upstream error 400", 400))
        with pytest.raises(TerminalRequestError):
            await research_details(BusinessIdentity("Glow Day Spa"), "Newtown", cache=cache)

    assert cache.list_entries() == []


@pytest.mark.asyncio
async def test_research_details_enriches_and_processes_photos():
    cache = RecordCache(MemoryCacheStorage())
    place = PlaceRecord(
        place_id="ChIJ123",
        formatted_address="12 King Street, Newtown NSW 2042, Australia",
        coordinates=Coordinates(-33.9, 151.18),
        rating=Rating(4.5, 120),
        photos=["https://maps.googleapis.com/photo?ref=1", "https://maps.googleapis.com/photo?ref=2"],
    )
    thumbnails = mock_thumbnails(["/thumbnails/glow_1.jpg", "/thumbnails/glow_2.jpg"])

    with patch("salon_research.pipeline.PerplexityClient") as mock_client, \
         patch("salon_research.pipeline.PlacesClient") as mock_places_cls:
        mock_perplexity(mock_client, DETAIL_RESPONSE)
        places = mock_places(mock_places_cls, place)

        result = await research_details(
            BusinessIdentity("Glow Day Spa"), "Newtown", cache=cache, thumbnails=thumbnails
        )

    record = result.record
    assert result.from_cache is False
    assert result.strategy == "strip_reasoning_wrapper"
    assert record.address == "12 King St, Newtown NSW 2042"
    assert record.coordinates == Coordinates(-33.9, 151.18)
    assert record.rating == Rating(4.5, 120)
    assert record.photos == place.photos
    assert record.local_photos == ["/thumbnails/glow_1.jpg", "/thumbnails/glow_2.jpg"]
    assert record.place_id == "ChIJ123"
    assert set(result.enriched_fields) == {"coordinates", "rating", "photos", "place_id", "local_photos"}
    places.find_place.assert_awaited_once_with("Glow Day Spa salon Newtown", expected_name="Glow Day Spa")

    cached = cache.get_details(None, "Glow Day Spa", DEFAULT_MODEL)
    assert cached == record
    assert len(cache.list_entries("details")) == 1


@pytest.mark.asyncio
async def test_research_details_falls_back_to_address_query():
    cache = RecordCache(MemoryCacheStorage())

    with patch("salon_research.pipeline.PerplexityClient") as mock_client, \
         patch("salon_research.pipeline.PlacesClient") as mock_places_cls:
        mock_perplexity(mock_client, DETAIL_RESPONSE)
        places = mock_places(mock_places_cls, None)

        result = await research_details(
            BusinessIdentity("Glow Day Spa"), "Newtown", cache=cache, thumbnails=mock_thumbnails()
        )

    assert result.enriched_fields == []
    assert [c.args[0] for c in places.find_place.await_args_list] == [
        "Glow Day Spa salon Newtown",
        "Glow Day Spa 12 King St, Newtown NSW 2042",
    ]
    assert cache.get_details(None, "Glow Day Spa", DEFAULT_MODEL).name == "Glow Day Spa"


@pytest.mark.asyncio
async def test_complete_cached_record_skips_upstream_and_enrichment():
    cache = RecordCache(MemoryCacheStorage())
    cache.save_details(BusinessRecord(
        name="Glow Day Spa",
        coordinates=Coordinates(-33.9, 151.18),
        photos=["https://maps.googleapis.com/photo?ref=1"],
        local_photos=["/thumbnails/glow_1.jpg"],
    ), DEFAULT_MODEL)
    thumbnails = mock_thumbnails(["/thumbnails/other.jpg"])

    with patch("salon_research.pipeline.PerplexityClient") as mock_client, \
         patch("salon_research.pipeline.PlacesClient") as mock_places_cls:
        client = mock_perplexity(mock_client, DETAIL_RESPONSE)
        places = mock_places(mock_places_cls, None)

        result = await research_details(
            BusinessIdentity("Glow Day Spa"), "Newtown", cache=cache, thumbnails=thumbnails
        )

    assert result.from_cache is True
    assert result.record.local_photos == ["/thumbnails/glow_1.jpg"]
    assert not client.complete.called
    assert not places.find_place.called
    assert not thumbnails.process.called


@pytest.mark.asyncio
async def test_cached_record_without_coordinates_is_enriched():
    cache = RecordCache(MemoryCacheStorage())
    cache.save_details(BusinessRecord(name="Glow Day Spa", description="Calm day spa"), DEFAULT_MODEL)
    place = PlaceRecord(place_id="ChIJ123", coordinates=Coordinates(-33.9, 151.18))

    with patch("salon_research.pipeline.PerplexityClient") as mock_client, \
         patch("salon_research.pipeline.PlacesClient") as mock_places_cls:
        client = mock_perplexity(mock_client, DETAIL_RESPONSE)
        mock_places(mock_places_cls, place)

        result = await research_details(
            BusinessIdentity("Glow Day Spa"), "Newtown", cache=cache, thumbnails=mock_thumbnails()
        )

    assert not client.complete.called
    assert result.from_cache is True
    assert result.record.coordinates == Coordinates(-33.9, 151.18)
    assert result.record.description == "Calm day spa"
    assert cache.get_details(None, "Glow Day Spa", DEFAULT_MODEL).coordinates == Coordinates(-33.9, 151.18)
