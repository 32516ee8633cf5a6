"""
Seed the college directory.

Subcommands:
    seed        write the static dataset into the collegesMaster collection
    ai-seed     ask the models for colleges per state/category/ownership and merge them in
    build-json  extract colleges from authoritative listing URLs into the static dataset
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from college_directory import load_colleges
from models import DirectoryCollege, DirectoryScrapeFilters, DirectoryScrapeOutput, SourceUrlInput
from prompt_dispatcher import PromptDispatcher, PromptSpec, build_dispatcher

logger = logging.getLogger(__name__)

STATES = [
    "Andhra Pradesh", "Arunachal Pradesh", "Assam", "Bihar", "Chhattisgarh", "Delhi", "Goa",
    "Gujarat", "Haryana", "Himachal Pradesh", "Jharkhand", "Karnataka", "Kerala", "Madhya Pradesh",
    "Maharashtra", "Manipur", "Meghalaya", "Mizoram", "Nagaland", "Odisha", "Punjab", "Rajasthan",
    "Sikkim", "Tamil Nadu", "Telangana", "Tripura", "Uttar Pradesh", "Uttarakhand", "West Bengal",
]

CATEGORIES = [
    "Engineering", "Medical", "Management", "Law", "Arts", "Science", "Commerce", "Pharmacy",
    "Agriculture", "Fashion", "Architecture", "Polytechnic",
]

OWNERSHIPS = ["government", "private"]

SOURCE_URLS = [
    "https://www.aicte-india.org/approved-institutes",
    "https://www.ugc.ac.in/stateuniversitylist.aspx",
    "https://www.nirfindia.org/2025/Ranking.html",
]

_RECORD_FIELDS = """- id (unique number, generate if missing)
- name
- type (college/university/institute)
- ownership (government/private)
- category
- state
- city
- address
- website
- approval_body
- aliases (array of strings)"""

DIRECTORY_SCRAPE_PROMPT = PromptSpec(
    name="scrapeAndEnrichPrompt",
    input_model=DirectoryScrapeFilters,
    output_model=DirectoryScrapeOutput,
    template=f"""You are an AI web-scraper and data enricher.
Use reliable sources (AICTE, UGC, NIRF, Wikipedia, official college sites)
for Indian colleges/universities that match these filters:

- State: {{{{{{state}}}}}}
- Ownership: {{{{{{ownership}}}}}}
- Category: {{{{{{category}}}}}}

Return a JSON object with a single key, colleges, holding an array of objects with:
{_RECORD_FIELDS}

No free text. Only JSON.""",
)

SOURCE_EXTRACT_PROMPT = PromptSpec(
    name="scrapeCollegesPrompt",
    input_model=SourceUrlInput,
    output_model=DirectoryScrapeOutput,
    template=f"""Extract data from: {{{{{{url}}}}}}.
Extract only structured Indian college/university data.
Return a JSON object with a single key, colleges, holding an array of objects with:
{_RECORD_FIELDS}

Ensure id is a unique number. Return valid JSON only.""",
)


def dedupe_colleges(colleges: Iterable[DirectoryCollege]) -> List[DirectoryCollege]:
    """Keep one college per ``name-city``; later entries replace earlier ones."""
    unique: Dict[str, DirectoryCollege] = {}
    for college in colleges:
        unique[f"{college.name}-{college.city}"] = college
    return list(unique.values())


def seed_static(store: Any, dataset_path: str) -> int:
    colleges = load_colleges(dataset_path)
    written = store.seed_colleges([c.model_dump(exclude_none=True) for c in colleges])
    logger.info("[Seed] Database seeded successfully with %d colleges", written)
    return written


async def ai_seed(
    dispatcher: PromptDispatcher,
    store: Any,
    states: Optional[List[str]] = None,
    categories: Optional[List[str]] = None,
    ownerships: Optional[List[str]] = None,
) -> Dict[str, Any]:
    total_saved = 0
    failures: List[str] = []

    for state in states or STATES:
        for category in categories or CATEGORIES:
            for ownership in ownerships or OWNERSHIPS:
                label = f"{state}-{ownership}-{category}"
                try:
                    logger.info("[Seed] Scraping: %s | %s | %s", state, ownership, category)
                    output = await dispatcher.run(
                        DIRECTORY_SCRAPE_PROMPT,
                        DirectoryScrapeFilters(state=state, ownership=ownership, category=category),
                    )
                    if not output.colleges:
                        logger.info("[Seed] No data returned for %s. Skipping.", label)
                        continue
                    store.seed_colleges(
                        [c.model_dump(exclude_none=True) for c in output.colleges],
                        merge=True,
                    )
                    total_saved += len(output.colleges)
                    logger.info("[Seed] Saved %d colleges for %s. Total saved: %d", len(output.colleges), label, total_saved)
                except Exception as e:
                    logger.error("[Seed] Failed for %s: %s", label, e)
                    failures.append(f"{label}: {e}")

    logger.info("[Seed] Autonomous seeding complete. Total colleges saved: %d", total_saved)
    return {"success": not failures, "totalSaved": total_saved, "errors": failures}


async def build_colleges_json(
    dispatcher: PromptDispatcher,
    output_path: str,
    urls: Optional[List[str]] = None,
) -> Dict[str, Any]:
    all_colleges: List[DirectoryCollege] = []
    for url in urls or SOURCE_URLS:
        try:
            logger.info("[Seed] Extracting from %s...", url)
            output = await dispatcher.run(SOURCE_EXTRACT_PROMPT, SourceUrlInput(url=url))
        except Exception as e:
            logger.error("[Seed] Extraction failed for %s: %s", url, e)
            continue
        if output.colleges:
            logger.info("[Seed] Found %d colleges at %s.", len(output.colleges), url)
            all_colleges.extend(output.colleges)
        else:
            logger.info("[Seed] No colleges found at %s.", url)

    unique = dedupe_colleges(all_colleges)
    logger.info("[Seed] Total colleges found: %d. Unique colleges: %d.", len(all_colleges), len(unique))

    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as fh:
        json.dump([c.model_dump(exclude_none=True) for c in unique], fh, indent=2)
    logger.info("[Seed] Wrote %s with %d colleges", output_path, len(unique))
    return {"count": len(unique), "path": output_path}


def main() -> int:
    from config import get_settings
    from firebase_service import get_firebase_service

    parser = argparse.ArgumentParser(description="Seed the college directory.")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("seed", help="Write the static dataset to Firestore.")
    ai = sub.add_parser("ai-seed", help="Generate colleges per filter combination and merge them into Firestore.")
    ai.add_argument("--state", action="append", dest="states", help="Limit to this state (repeatable).")
    ai.add_argument("--category", action="append", dest="categories", help="Limit to this category (repeatable).")
    ai.add_argument("--ownership", action="append", dest="ownerships", choices=OWNERSHIPS)
    build = sub.add_parser("build-json", help="Rebuild the static dataset from authoritative sources.")
    build.add_argument("--output", default=None, help="Output path (defaults to COLLEGES_JSON_PATH).")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = get_settings()

    if args.command == "seed":
        result: Dict[str, Any] = {"written": seed_static(get_firebase_service(), settings.colleges_json_path)}
    elif args.command == "ai-seed":
        result = asyncio.run(ai_seed(
            build_dispatcher(settings),
            get_firebase_service(),
            states=args.states,
            categories=args.categories,
            ownerships=args.ownerships,
        ))
    else:
        result = asyncio.run(build_colleges_json(
            build_dispatcher(settings),
            args.output or settings.colleges_json_path,
        ))

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
