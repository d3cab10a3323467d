"""
Dataset discovery and identifier derivation.

Every distinct Metadata.title becomes one dataset whose identifier is a slug
derived from the title alone, so identifiers come out the same on every run.
"""

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from survey_dwca.exceptions import IdentifierCollisionError
from survey_dwca.mapping import clean_value, titled_records

logger = logging.getLogger(__name__)

# Corrections for upstream title typos and template leftovers, applied in
# order to the lower-cased title. Append new rules at the end only: editing
# or reordering existing rules changes published identifiers.
CORRECTIONS: Tuple[Tuple[str, str], ...] = (
    (r"\btemplate\b", ""),
    (r"\bmeiofaun\s*$", "meiofauna"),
    (r"\bbiodiveristy\b", "biodiversity"),
)

_HYPHEN_RUNS = re.compile(r"[\s-]*-[\s-]*")
_WHITESPACE = re.compile(r"\s+")
_UNSAFE = re.compile(r"[^a-z0-9_\-]")


@dataclass
class Dataset:
    """One logical dataset: all export records sharing a Metadata.title."""

    title: str
    dataset_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    record_count: int = 0


def derive_dataset_id(title: str) -> str:
    """
    Derive the slug for one dataset title.

    "Biodiveristy Survey" -> "biodiversity_survey"
    """
    slug = title.lower()
    for pattern, replacement in CORRECTIONS:
        slug = re.sub(pattern, replacement, slug)

    slug = _HYPHEN_RUNS.sub("-", slug)
    slug = _WHITESPACE.sub(" ", slug).strip()
    slug = slug.replace(" ", "_")
    return _UNSAFE.sub("", slug).strip("_-")


def derive_dataset_ids(titles: Iterable[str]) -> Dict[str, str]:
    """
    Derive one identifier per distinct title.

    Raises:
        IdentifierCollisionError: if two distinct titles share an identifier
            or a title yields an empty identifier
    """
    ids = {title: derive_dataset_id(title) for title in dict.fromkeys(titles)}

    empty = sorted(title for title, slug in ids.items() if not slug)
    if empty:
        raise IdentifierCollisionError(
            "Dataset titles produced an empty identifier", context={"titles": empty}
        )

    by_slug = defaultdict(list)
    for title, slug in ids.items():
        by_slug[slug].append(title)
    collisions = {slug: titles for slug, titles in by_slug.items() if len(titles) > 1}
    if collisions:
        raise IdentifierCollisionError(
            f"{len(ids)} distinct titles produced only {len(by_slug)} identifiers; "
            "add a correction rule",
            context={"collisions": collisions},
        )

    return ids


def group_datasets(records: List[Mapping]) -> List[Dataset]:
    """
    Group export records by title, in order of first appearance.
    Dataset metadata is taken from the first record of each group.
    """
    groups: Dict[str, Dataset] = {}
    for _, record, title in titled_records(records):
        if title not in groups:
            metadata = {
                key: clean_value(value)
                for key, value in (record.get('Metadata') or {}).items()
            }
            groups[title] = Dataset(title=title, dataset_id="", metadata=metadata)
        groups[title].record_count += 1

    ids = derive_dataset_ids(groups)
    for title, dataset in groups.items():
        dataset.dataset_id = ids[title]

    logger.info("Found %d datasets in %d records", len(groups), len(records))
    return list(groups.values())
