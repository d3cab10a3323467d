"""
Taxonomic name cleaning and resolution.

Free-text names are parsed with the GlobalNames parser, matched against WoRMS
and bound to an LSID. Each distinct name is cleaned and matched once per run.
Occurrences then take the most specific rank that resolved.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol
from urllib.parse import quote

import pandas as pd
import requests

from survey_dwca.exceptions import NameResolutionError

logger = logging.getLogger(__name__)

# Columns whose names are cleaned and matched
TAXON_COLUMNS = ("phylum", "class", "order", "family", "genus", "scientificName")

# Order in which resolved ranks are preferred for scientificNameID
RANK_FALLBACK = ("scientificName", "genus", "family", "order", "class")

# WoRMS match types accepted as a resolution
ACCEPTED_MATCH_TYPES = ("exact", "exact_genus")

WORMS_LSID = "urn:lsid:marinespecies.org:taxname:{}"


@dataclass(frozen=True)
class MatchCandidate:
    """One candidate returned by the taxonomic authority."""

    match_type: str
    identifier: Optional[str]
    name: Optional[str] = None


class NameParser(Protocol):
    def parse(self, name: str) -> Optional[str]:
        ...


class TaxonAuthority(Protocol):
    def match(self, name: str) -> List[MatchCandidate]:
        ...


# ============================================================================
# EXTERNAL SERVICES
# ============================================================================

class GNParserClient:
    """GlobalNames parser REST client."""

    def __init__(self, base_url: str = "https://parser.globalnames.org/api/v1", timeout: float = 30.0):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

    def parse(self, name: str) -> Optional[str]:
        """
        Return the canonical simple form of a name, or None if it does not parse.

        Raises:
            NameResolutionError: on transport errors or when the service does not
                return exactly one parse
        """
        url = f"{self.base_url}/{quote(name, safe='')}"
        try:
            response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
            results = response.json()
        except (requests.RequestException, ValueError) as e:
            raise NameResolutionError(
                "Name parser request failed", context={"name": name}, original_exception=e
            )

        if not isinstance(results, list) or len(results) != 1:
            raise NameResolutionError(
                "Name parser did not return exactly one result", context={"name": name}
            )

        result = results[0] or {}
        if not result.get('parsed'):
            return None
        return (result.get('canonical') or {}).get('simple')


class WoRMSClient:
    """WoRMS REST client using AphiaRecordsByMatchNames (taxamatch)."""

    def __init__(self, base_url: str = "https://www.marinespecies.org/rest", timeout: float = 30.0):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

    def match(self, name: str) -> List[MatchCandidate]:
        """
        Return the match candidates for a single name.

        Raises:
            NameResolutionError: on transport errors or when the response does not
                hold exactly one result list
        """
        url = f"{self.base_url}/AphiaRecordsByMatchNames"
        params = {'scientificnames[]': name, 'marine_only': 'false'}
        try:
            response = requests.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            if response.status_code == 204 or not response.content:
                return []
            results = response.json()
        except (requests.RequestException, ValueError) as e:
            raise NameResolutionError(
                "WoRMS request failed", context={"name": name}, original_exception=e
            )

        if not isinstance(results, list) or len(results) != 1:
            raise NameResolutionError(
                "WoRMS did not return exactly one result list", context={"name": name}
            )

        candidates = []
        for record in results[0] or []:
            identifier = record.get('lsid')
            if not identifier and record.get('AphiaID') is not None:
                identifier = WORMS_LSID.format(record['AphiaID'])
            candidates.append(MatchCandidate(
                match_type=record.get('match_type') or '',
                identifier=identifier,
                name=record.get('scientificname'),
            ))
        return candidates


# ============================================================================
# RESOLVER
# ============================================================================

class TaxonomicResolver:
    """
    Cleans and matches distinct taxonomic names, then assigns scientificNameID
    to occurrences by rank fallback.

    The caches live on the instance: one resolver per run.
    """

    def __init__(self, parser: NameParser, authority: TaxonAuthority):
        self.parser = parser
        self.authority = authority
        self.clean_cache: Dict[str, str] = {}
        self.match_cache: Dict[str, Optional[str]] = {}
        self.stats = {
            'distinct_names': 0,
            'resolved_names': 0,
            'ambiguous_names': 0,
            'resolved_occurrences': 0,
        }

    def clean(self, name: str) -> str:
        """Canonical form of a name; the raw name if parsing fails."""
        if name in self.clean_cache:
            return self.clean_cache[name]

        cleaned = name
        try:
            parsed = self.parser.parse(name)
            if parsed:
                cleaned = parsed
        except Exception as e:
            logger.debug("Could not parse %r: %s", name, e)

        self.clean_cache[name] = cleaned
        return cleaned

    def select_candidate(self, name: str, candidates: List[MatchCandidate]) -> Optional[str]:
        """
        Pick the identifier among exact and exact_genus candidates.
        When several remain, the first in the authority's result order wins.
        """
        accepted = [
            c for c in candidates
            if c.match_type in ACCEPTED_MATCH_TYPES and c.identifier
        ]
        if not accepted:
            return None
        if len(accepted) > 1:
            self.stats['ambiguous_names'] += 1
            logger.warning(
                "Ambiguous match for %r: %d candidates (%s)",
                name, len(accepted), ", ".join(c.identifier for c in accepted)
            )
        return accepted[0].identifier

    def match(self, name: str) -> Optional[str]:
        """Identifier for a cleaned name, or None if unresolved."""
        if name in self.match_cache:
            return self.match_cache[name]

        identifier = None
        try:
            candidates = self.authority.match(name)
            identifier = self.select_candidate(name, candidates)
        except Exception as e:
            logger.debug("Could not match %r: %s", name, e)

        self.match_cache[name] = identifier
        return identifier

    def resolve_name(self, name: str) -> Optional[str]:
        """Clean then match one raw name."""
        return self.match(self.clean(name))

    def resolve(self, occurrence_df: pd.DataFrame) -> pd.DataFrame:
        """
        Resolve scientificNameID for every occurrence, in place.

        Taxonomic columns are replaced by their cleaned names.

        Args:
            occurrence_df: Flattened occurrence table

        Returns:
            The same DataFrame
        """
        columns = [c for c in TAXON_COLUMNS if c in occurrence_df.columns]

        resolved = {}
        for column in columns:
            for name in occurrence_df[column]:
                if isinstance(name, str) and name not in resolved:
                    resolved[name] = self.resolve_name(name)

        self.stats['distinct_names'] = len(resolved)
        self.stats['resolved_names'] = sum(1 for v in resolved.values() if v)
        logger.info(
            "Resolved %d of %d distinct taxonomic names",
            self.stats['resolved_names'], self.stats['distinct_names']
        )

        fallback = [c for c in RANK_FALLBACK if c in occurrence_df.columns]

        def best_identifier(row):
            for column in fallback:
                name = row[column]
                identifier = resolved.get(name) if isinstance(name, str) else None
                if identifier:
                    return identifier
            return None

        identifiers = [best_identifier(row) for row in occurrence_df.to_dict('records')]
        occurrence_df['scientificNameID'] = pd.Series(identifiers, index=occurrence_df.index, dtype=object)

        for column in columns:
            occurrence_df[column] = pd.Series(
                [self.clean_cache.get(v, v) if isinstance(v, str) else v for v in occurrence_df[column]],
                index=occurrence_df.index,
                dtype=object,
            )

        self.stats['resolved_occurrences'] = sum(1 for i in identifiers if i)
        logger.info(
            "%d of %d occurrences carry a scientificNameID",
            self.stats['resolved_occurrences'], len(occurrence_df)
        )
        return occurrence_df
