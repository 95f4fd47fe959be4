import os
import asyncio
import pandas as pd
import csv
from typing import List, Tuple
import sys
from loguru import logger

from salon_research.models import BusinessIdentity
from salon_research.pipeline import research_details, research_list
from salon_research.errors import ResearchError
from salon_research.config import INPUT_CSV, OUTPUT_CSV, DEFAULT_MODEL, LOG_LEVEL, REQUEST_DELAY, TESTING_MODE
from salon_research.clients import PlacesClient, ThumbnailClient

OUTPUT_COLUMNS = [
    "Suburb", "Name", "Address", "Rating", "Reviews", "Phone", "Website",
    "Categories", "Photos", "FromCache", "EnrichedFields", "Issues", "Status",
]


def load_suburbs_from_csv(file_path: str, nrows: int = None) -> List[Tuple[str, str]]:
    """Load (suburb, model) pairs from CSV; the Model column is optional."""
    df = pd.read_csv(file_path, nrows=nrows)
    suburbs = []
    for _, row in df.iterrows():
        if pd.isna(row["Suburb"]) or not str(row["Suburb"]).strip():
            continue
        model = DEFAULT_MODEL
        if "Model" in row.index and pd.notna(row["Model"]) and str(row["Model"]).strip():
            model = str(row["Model"]).strip()
        suburbs.append((str(row["Suburb"]).strip(), model))
    return suburbs


def write_row(output_path: str, row: List) -> None:
    with open(output_path, "a", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(row)


async def process_suburb(suburb: str, model: str, output_path: str) -> None:
    """
    Research one suburb: its list of businesses, then each business's details.

    Failures are recorded as rows and never stop the batch.
    """
    try:
        listing = await research_list(suburb, model)
    except ResearchError as e:
        logger.error(f"❌ Could not list salons for {suburb}: {e}")
        write_row(output_path, [suburb, "", "", "", "", "", "", "", "", "", "", str(e), "failed"])
        return

    names = listing.names[:1] if TESTING_MODE else listing.names
    if TESTING_MODE:
        logger.info(f"🧪 Testing mode: only researching {names}")

    for i, name in enumerate(names):
        if i > 0:
            await asyncio.sleep(REQUEST_DELAY)
        logger.info(f"🔍 [{i + 1}/{len(names)}] {name} ({suburb})")
        try:
            result = await research_details(BusinessIdentity(name=name), suburb, model)
        except ResearchError as e:
            logger.error(f"❌ Could not research {name}: {e}")
            write_row(output_path, [suburb, name, "", "", "", "", "", "", "", "", "", str(e), "failed"])
            continue

        record = result.record
        write_row(output_path, [
            suburb,
            record.name,
            record.address or "",
            record.rating.stars if record.rating else "",
            record.rating.number_of_reviewers if record.rating else "",
            record.contact_number or "",
            record.website or "",
            ";".join(record.service_categories),
            len(record.photos),
            result.from_cache,
            ";".join(result.enriched_fields),
            "; ".join(str(issue) for issue in result.issues),
            "ok",
        ])


async def main():
    """
    Orchestrate the batch research run.

    - Loads suburbs from the input CSV.
    - Researches them one at a time with a pause between requests, so the
      request governor's window and backoff stay coherent.
    - Appends one row per business to the output CSV.
    """
    suburbs = load_suburbs_from_csv(INPUT_CSV, nrows=1 if TESTING_MODE else None)

    # Initialize logs
    logger.remove()  # Remove default handler
    logger.add(sys.stderr, level=LOG_LEVEL, format="<green>{time:HH:mm:ss}</green> | <level>{message}</level>")

    # Initialize output file
    output_path = OUTPUT_CSV
    if os.path.exists(output_path):
        os.remove(output_path)
    with open(output_path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(OUTPUT_COLUMNS)

    try:
        for i, (suburb, model) in enumerate(suburbs):
            if i > 0:
                await asyncio.sleep(REQUEST_DELAY)
            logger.info(f"🏙️ Processing suburb {i + 1}/{len(suburbs)}: {suburb} ({model})")
            await process_suburb(suburb, model, output_path)
    finally:
        # Cleanup: close aiohttp sessions to prevent unclosed connector warnings
        await PlacesClient().close()
        await ThumbnailClient().close()

if __name__ == "__main__":
    asyncio.run(main())
