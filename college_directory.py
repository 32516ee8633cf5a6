"""
Search over the static college directory dataset.
"""
from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import List, Sequence, Union

from models import CollegeSearchParams, CollegeSearchResponse, DirectoryCollege

logger = logging.getLogger(__name__)


def load_colleges(path: Union[str, Path]) -> List[DirectoryCollege]:
    with open(path, encoding="utf-8") as fh:
        raw = json.load(fh)
    if not isinstance(raw, list):
        raise ValueError(f"Expected a JSON array of colleges in {path}")
    colleges = [DirectoryCollege.model_validate(item) for item in raw]
    logger.info("[Directory] Loaded %d colleges from %s", len(colleges), path)
    return colleges


@lru_cache(maxsize=4)
def get_colleges(path: str) -> List[DirectoryCollege]:
    return load_colleges(path)


def _matches_query(college: DirectoryCollege, needle: str) -> bool:
    haystack = [college.name, college.city, *college.aliases]
    return any(needle in value.lower() for value in haystack)


def search_colleges(colleges: Sequence[DirectoryCollege], params: CollegeSearchParams) -> CollegeSearchResponse:
    """
    Filter the directory and return one page of results.

    ``state``, ``ownership`` and ``category`` match exactly; ``query`` is a
    case-insensitive substring match on name, city and aliases. The cursor
    is an offset into the filtered list.
    """
    filtered = [
        c for c in colleges
        if (params.state is None or c.state == params.state)
        and (params.ownership is None or c.ownership == params.ownership)
        and (params.category is None or c.category == params.category)
    ]
    if params.query:
        needle = params.query.lower()
        filtered = [c for c in filtered if _matches_query(c, needle)]

    offset = params.cursor or 0
    page = filtered[offset : offset + params.limit]
    end = offset + len(page)
    next_cursor = end if end < len(filtered) else None
    return CollegeSearchResponse(colleges=page, next_cursor=next_cursor)
