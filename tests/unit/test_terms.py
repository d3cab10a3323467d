"""
Unit tests for the term registry
"""

from unittest.mock import Mock, patch

import pytest
import requests

from survey_dwca.exceptions import TermRegistryError
from survey_dwca.mapping import MEASUREMENT, OCCURRENCE
from survey_dwca.terms import TermRegistry, fetch_vocabulary, parse_vocabulary


class TestParseVocabulary:
    def test_properties(self, registry):
        assert registry.term_for(OCCURRENCE, "decimalLatitude") == "http://rs.tdwg.org/dwc/terms/decimalLatitude"
        assert registry.term_for(MEASUREMENT, "measurementTypeID") == "http://rs.iobis.org/obis/terms/measurementTypeID"

    def test_row_types(self, registry):
        assert registry.row_type(OCCURRENCE) == "http://rs.tdwg.org/dwc/terms/Occurrence"
        assert registry.row_type(MEASUREMENT) == "http://rs.iobis.org/obis/terms/ExtendedMeasurementOrFact"

    def test_unmapped_column_has_empty_term(self, registry):
        assert registry.term_for(OCCURRENCE, "id") == ""
        assert registry.term_for(MEASUREMENT, "datasetID") == ""

    def test_lookup_is_exact(self, registry):
        assert registry.term_for(OCCURRENCE, "decimallatitude") == ""

    def test_namespace_without_qual_name(self):
        vocabulary = parse_vocabulary(
            '<extension rowType="x"><property name="sex" namespace="http://rs.tdwg.org/dwc/terms/"/></extension>'
        )
        assert vocabulary.terms == {"sex": "http://rs.tdwg.org/dwc/terms/sex"}

    def test_invalid_xml(self):
        with pytest.raises(TermRegistryError):
            parse_vocabulary("<extension>")

    def test_no_terms(self):
        with pytest.raises(TermRegistryError):
            parse_vocabulary("<extension rowType='x'/>")


class TestFetchVocabulary:
    def test_local_file(self, tmp_path):
        path = tmp_path / "vocab.xml"
        path.write_text('<extension rowType="r"><property name="a" qualName="urn:a"/></extension>')

        assert fetch_vocabulary(str(path)).terms == {"a": "urn:a"}

    def test_url(self):
        response = Mock()
        response.text = '<extension rowType="r"><property name="a" qualName="urn:a"/></extension>'
        response.raise_for_status = Mock()

        with patch("survey_dwca.terms.requests.get", return_value=response) as get:
            vocabulary = fetch_vocabulary("https://rs.example.org/core.xml", timeout=3)

        assert vocabulary.row_type == "r"
        get.assert_called_once_with("https://rs.example.org/core.xml", timeout=3)

    def test_url_failure(self):
        with patch("survey_dwca.terms.requests.get", side_effect=requests.ConnectionError("down")):
            with pytest.raises(TermRegistryError):
                fetch_vocabulary("https://rs.example.org/core.xml")

    def test_missing_file(self, tmp_path):
        with pytest.raises(TermRegistryError):
            fetch_vocabulary(str(tmp_path / "missing.xml"))

    def test_load_registry(self, tmp_path):
        core = tmp_path / "core.xml"
        core.write_text('<extension rowType="core"><property name="a" qualName="urn:a"/></extension>')
        ext = tmp_path / "ext.xml"
        ext.write_text('<extension rowType="ext"><property name="b" qualName="urn:b"/></extension>')

        registry = TermRegistry.load(str(core), str(ext))

        assert registry.term_for(OCCURRENCE, "a") == "urn:a"
        assert registry.term_for(MEASUREMENT, "b") == "urn:b"
        assert registry.term_for(MEASUREMENT, "a") == ""
