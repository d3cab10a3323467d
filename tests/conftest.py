"""
Pytest configuration and fixtures
"""

import copy
import json

import pytest

from survey_dwca.config import DEFAULT_MAPPING_SCHEMA, get_settings
from survey_dwca.mapping import MappingEngine
from survey_dwca.taxonomy import MatchCandidate
from survey_dwca.terms import TermRegistry, parse_vocabulary

OCCURRENCE_VOCABULARY = """<?xml version="1.0" encoding="UTF-8"?>
<extension xmlns="http://rs.gbif.org/extension/"
           name="Occurrence" rowType="http://rs.tdwg.org/dwc/terms/Occurrence">
  <property name="occurrenceID" namespace="http://rs.tdwg.org/dwc/terms/" qualName="http://rs.tdwg.org/dwc/terms/occurrenceID"/>
  <property name="datasetID" namespace="http://rs.tdwg.org/dwc/terms/" qualName="http://rs.tdwg.org/dwc/terms/datasetID"/>
  <property name="basisOfRecord" namespace="http://rs.tdwg.org/dwc/terms/" qualName="http://rs.tdwg.org/dwc/terms/basisOfRecord"/>
  <property name="eventDate" namespace="http://rs.tdwg.org/dwc/terms/" qualName="http://rs.tdwg.org/dwc/terms/eventDate"/>
  <property name="decimalLatitude" namespace="http://rs.tdwg.org/dwc/terms/" qualName="http://rs.tdwg.org/dwc/terms/decimalLatitude"/>
  <property name="decimalLongitude" namespace="http://rs.tdwg.org/dwc/terms/" qualName="http://rs.tdwg.org/dwc/terms/decimalLongitude"/>
  <property name="phylum" namespace="http://rs.tdwg.org/dwc/terms/" qualName="http://rs.tdwg.org/dwc/terms/phylum"/>
  <property name="class" namespace="http://rs.tdwg.org/dwc/terms/" qualName="http://rs.tdwg.org/dwc/terms/class"/>
  <property name="order" namespace="http://rs.tdwg.org/dwc/terms/" qualName="http://rs.tdwg.org/dwc/terms/order"/>
  <property name="family" namespace="http://rs.tdwg.org/dwc/terms/" qualName="http://rs.tdwg.org/dwc/terms/family"/>
  <property name="genus" namespace="http://rs.tdwg.org/dwc/terms/" qualName="http://rs.tdwg.org/dwc/terms/genus"/>
  <property name="scientificName" namespace="http://rs.tdwg.org/dwc/terms/" qualName="http://rs.tdwg.org/dwc/terms/scientificName"/>
  <property name="scientificNameID" namespace="http://rs.tdwg.org/dwc/terms/" qualName="http://rs.tdwg.org/dwc/terms/scientificNameID"/>
</extension>
"""

MEASUREMENT_VOCABULARY = """<?xml version="1.0" encoding="UTF-8"?>
<extension xmlns="http://rs.gbif.org/extension/"
           name="ExtendedMeasurementOrFact" rowType="http://rs.iobis.org/obis/terms/ExtendedMeasurementOrFact">
  <property name="measurementType" namespace="http://rs.tdwg.org/dwc/terms/" qualName="http://rs.tdwg.org/dwc/terms/measurementType"/>
  <property name="measurementValue" namespace="http://rs.tdwg.org/dwc/terms/" qualName="http://rs.tdwg.org/dwc/terms/measurementValue"/>
  <property name="measurementUnit" namespace="http://rs.tdwg.org/dwc/terms/" qualName="http://rs.tdwg.org/dwc/terms/measurementUnit"/>
  <property name="measurementTypeID" namespace="http://rs.iobis.org/obis/terms/" qualName="http://rs.iobis.org/obis/terms/measurementTypeID"/>
</extension>
"""


def make_record(title, scientific_name="Halammohydra schulzei", genus="Halammohydra",
                family="Halammohydridae", measurements=None, **taxon):
    """Build one nested export record."""
    record = {
        "Metadata": {
            "title": title,
            "creator": "Jane Doe",
            "abstract": "Interstitial fauna of sandy beaches",
            "citation": "Doe J. (2020) Sandy beach survey.",
        },
        "Occurrence": {"occurrenceID": "occ-1", "individualCount": "3"},
        "Event": {"eventDate": "2019-06-01"},
        "Location": {"decimalLatitude": "54.18", "decimalLongitude": "7.89"},
        "Identification": {"identifiedBy": "J. Doe"},
        "Record-level": {"basisOfRecord": "PreservedSpecimen"},
        "Taxon": {
            "phylum": "Cnidaria",
            "class": "Hydrozoa",
            "order": "Trachylinae",
            "family": family,
            "genus": genus,
            "scientificName": scientific_name,
        },
        "MeasurementOrFact": measurements if measurements is not None else [
            {"measurementType": "abundance", "measurementValue": "3", "measurementUnit": "individuals"},
        ],
    }
    record["Taxon"].update(taxon)
    return record


class FakeParser:
    """Name parser that strips authorship after the second word and counts calls."""

    def __init__(self, failures=()):
        self.calls = []
        self.failures = set(failures)

    def parse(self, name):
        self.calls.append(name)
        if name in self.failures:
            raise RuntimeError("parser unavailable")
        words = name.split()
        if len(words) > 2 and words[0][0].isupper() and words[1].islower():
            return " ".join(words[:2])
        return name


class FakeAuthority:
    """Taxonomic authority backed by a dict of name -> candidates."""

    def __init__(self, table=None, failures=()):
        self.table = table or {}
        self.calls = []
        self.failures = set(failures)

    def match(self, name):
        self.calls.append(name)
        if name in self.failures:
            raise TimeoutError("authority timed out")
        return list(self.table.get(name, []))


def exact(identifier, match_type="exact"):
    return MatchCandidate(match_type=match_type, identifier=identifier)


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def parser_factory():
    return FakeParser


@pytest.fixture
def authority_factory():
    return FakeAuthority


@pytest.fixture
def sample_records():
    return [
        make_record("Template Meiofaun"),
        make_record("Template Meiofaun", scientific_name="Halammohydra octopodides Remane, 1927"),
        make_record("Biodiveristy Survey", scientific_name="Otoplana sp.", genus="Otoplana",
                    family="Otoplanidae"),
    ]


@pytest.fixture
def fake_parser():
    return FakeParser()


@pytest.fixture
def fake_authority():
    return FakeAuthority({
        "Halammohydra schulzei": [exact("urn:lsid:marinespecies.org:taxname:117400")],
        "Halammohydra": [exact("urn:lsid:marinespecies.org:taxname:117371", "exact_genus")],
        "Otoplanidae": [exact("urn:lsid:marinespecies.org:taxname:142163")],
    })


@pytest.fixture
def registry():
    return TermRegistry(
        parse_vocabulary(OCCURRENCE_VOCABULARY),
        parse_vocabulary(MEASUREMENT_VOCABULARY),
    )


@pytest.fixture
def mapping_engine():
    return MappingEngine(DEFAULT_MAPPING_SCHEMA)


@pytest.fixture
def export_file(tmp_path, sample_records):
    path = tmp_path / "export.json"
    path.write_text(json.dumps(copy.deepcopy(sample_records)), encoding="utf-8")
    return path


@pytest.fixture
def settings(tmp_path, export_file):
    return get_settings(
        export_source=str(export_file),
        output_dir=tmp_path / "out",
        base_url="https://data.example.org/dwca",
    )
