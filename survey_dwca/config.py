"""
Pipeline configuration using Pydantic Settings
"""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MAPPING_SCHEMA = Path(__file__).parent / "schemas" / "survey-to-dwc-mappings.yaml"


class Settings(BaseSettings):
    """Pipeline settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_prefix="SURVEY_DWCA_",
        env_file=".env",
        extra="ignore",
    )

    # Input / output
    export_source: str = "survey_export.json"
    output_dir: Path = Path("dwc_archive_output")
    mapping_schema: Path = DEFAULT_MAPPING_SCHEMA

    # Term vocabularies
    occurrence_vocabulary_url: str = "https://rs.gbif.org/core/dwc_occurrence_2022-02-02.xml"
    measurement_vocabulary_url: str = "https://rs.gbif.org/extension/obis/extended_measurement_or_fact.xml"

    # Taxonomic services
    name_parser_url: str = "https://parser.globalnames.org/api/v1"
    authority_url: str = "https://www.marinespecies.org/rest"
    request_timeout: float = 30.0

    # Publication
    base_url: str = "https://example.org/dwca"
    publish_bucket: Optional[str] = None
    publish_prefix: str = "dwca"

    log_level: str = "INFO"


def get_settings(**overrides) -> Settings:
    """Build a fresh settings object; keyword arguments override the environment."""
    return Settings(**overrides)
