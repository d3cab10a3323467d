"""
Term registry: column name -> standard term URI for the Occurrence core and
the Extended Measurement or Fact extension, read from GBIF extension documents.
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

import requests

from survey_dwca.exceptions import TermRegistryError
from survey_dwca.mapping import MEASUREMENT, OCCURRENCE

logger = logging.getLogger(__name__)


@dataclass
class Vocabulary:
    """Terms of one extension document."""

    row_type: str
    terms: Dict[str, str] = field(default_factory=dict)


def _local_name(tag: str) -> str:
    return tag.rsplit('}', 1)[-1]


def parse_vocabulary(document: str, source: str = "<string>") -> Vocabulary:
    """
    Parse a GBIF extension XML document.

    Every <property name=... qualName=...> becomes one name -> URI pair.
    """
    try:
        root = ET.fromstring(document)
    except ET.ParseError as e:
        raise TermRegistryError(
            "Vocabulary is not valid XML", context={"source": source}, original_exception=e
        )

    terms = {}
    for element in root.iter():
        if _local_name(element.tag) != 'property':
            continue
        name = element.get('name')
        qual_name = element.get('qualName')
        if not qual_name and element.get('namespace') and name:
            qual_name = element.get('namespace') + name
        if name and qual_name:
            terms[name] = qual_name

    if not terms:
        raise TermRegistryError("Vocabulary defines no terms", context={"source": source})

    return Vocabulary(row_type=root.get('rowType', ''), terms=terms)


def fetch_vocabulary(source: str, timeout: float = 30.0) -> Vocabulary:
    """Read a vocabulary from a URL or a local file."""
    if str(source).startswith(("http://", "https://")):
        try:
            response = requests.get(source, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise TermRegistryError(
                "Could not fetch vocabulary", context={"source": source}, original_exception=e
            )
        document = response.text
    else:
        try:
            document = Path(source).read_text(encoding='utf-8')
        except OSError as e:
            raise TermRegistryError(
                "Could not read vocabulary", context={"source": source}, original_exception=e
            )

    vocabulary = parse_vocabulary(document, source)
    logger.info("Loaded %d terms from %s", len(vocabulary.terms), source)
    return vocabulary


class TermRegistry:
    """Exact column-name lookup of standard terms for both output tables."""

    def __init__(self, occurrence: Vocabulary, measurement: Vocabulary):
        self.vocabularies = {OCCURRENCE: occurrence, MEASUREMENT: measurement}

    @classmethod
    def load(cls, occurrence_source: str, measurement_source: str, timeout: float = 30.0) -> "TermRegistry":
        """Fetch both vocabularies once for the run."""
        return cls(
            fetch_vocabulary(occurrence_source, timeout),
            fetch_vocabulary(measurement_source, timeout),
        )

    def row_type(self, schema: str) -> str:
        return self.vocabularies[schema].row_type

    def term_for(self, schema: str, column: str) -> str:
        """Term URI for a column, or an empty string when unmapped."""
        return self.vocabularies[schema].terms.get(column, '')
