"""
Raw survey export extraction.
The export is one JSON document holding a top-level array of nested records.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

import requests

from survey_dwca.exceptions import ExtractionError

logger = logging.getLogger(__name__)


class ExportExtractor:
    """Load the raw export from a local file or an http(s) URL."""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout

    def fetch(self, source: str) -> List[Dict[str, Any]]:
        """
        Read the full export into memory.

        Args:
            source: Local path or http(s) URL of the JSON export

        Returns:
            List of raw records
        """
        if str(source).startswith(("http://", "https://")):
            document = self._fetch_url(source)
        else:
            document = self._read_file(Path(source))

        if not isinstance(document, list):
            raise ExtractionError(
                "Export must contain a top-level array of records",
                context={"source": str(source), "type": type(document).__name__},
            )

        logger.info("Loaded %d raw records from %s", len(document), source)
        return document

    def _fetch_url(self, url: str) -> Any:
        try:
            response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            raise ExtractionError(
                "Could not download export", context={"source": url}, original_exception=e
            )

    def _read_file(self, path: Path) -> Any:
        if not path.exists():
            raise ExtractionError("Export file not found", context={"source": str(path)})
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise ExtractionError(
                "Could not read export", context={"source": str(path)}, original_exception=e
            )


def load_export(source: str, timeout: float = 30.0) -> List[Dict[str, Any]]:
    """Convenience wrapper around ExportExtractor.fetch."""
    return ExportExtractor(timeout=timeout).fetch(source)
