"""
Unit tests for mapping documentation
"""

from survey_dwca.config import DEFAULT_MAPPING_SCHEMA
from survey_dwca.schema_docs import SchemaDocGenerator


class TestSchemaDocGenerator:
    def test_tables_per_class(self):
        doc = SchemaDocGenerator(DEFAULT_MAPPING_SCHEMA).generate_mappings_doc()

        assert doc.startswith("# Darwin Core Mappings")
        assert "## Occurrence Mappings" in doc
        assert "## MeasurementOrFact Mappings" in doc
        assert "| **decimalLatitude** | `Location:decimalLatitude` | float | - |" in doc

    def test_terms_from_registry(self, registry):
        doc = SchemaDocGenerator(DEFAULT_MAPPING_SCHEMA, registry).generate_mappings_doc()

        assert ("| **measurementType** | `MeasurementOrFact:measurementType` | string | "
                "http://rs.tdwg.org/dwc/terms/measurementType |") in doc
