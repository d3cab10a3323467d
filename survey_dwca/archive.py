"""
Darwin Core Archive assembly: one zipped archive per dataset holding the
occurrence core, the measurement extension, EML metadata and meta.xml.
"""

import logging
import shutil
import zipfile
from datetime import date
from pathlib import Path
from typing import List, Optional, Tuple

import pandas as pd

from survey_dwca.exceptions import ArchiveError
from survey_dwca.identifiers import Dataset
from survey_dwca.mapping import DATASET_ID, MEASUREMENT, OCCURRENCE, RECORD_ID
from survey_dwca.terms import TermRegistry

logger = logging.getLogger(__name__)

OCCURRENCE_FILE = "occurrence.txt"
MEASUREMENT_FILE = "extendedmeasurementorfact.txt"
EML_FILE = "eml.xml"
META_FILE = "meta.xml"
ARCHIVE_FILES = (OCCURRENCE_FILE, MEASUREMENT_FILE, EML_FILE, META_FILE)


def escape_xml(text: Optional[str]) -> str:
    """Escape the five XML special characters; & goes first."""
    if text is None:
        return ''
    return (
        str(text)
        .replace('&', '&amp;')
        .replace('>', '&gt;')
        .replace('<', '&lt;')
        .replace("'", '&apos;')
        .replace('"', '&quot;')
    )


def archive_url(base_url: str, dataset_id: str) -> str:
    return f"{base_url.rstrip('/')}/{dataset_id}/{dataset_id}.zip"


# ============================================================================
# EML METADATA GENERATION
# ============================================================================

class EMLGenerator:
    """Generate EML metadata from a dataset's Metadata block."""

    def __init__(self, base_url: str):
        self.base_url = base_url

    def generate_eml_xml(self, dataset: Dataset, pub_date: Optional[date] = None) -> str:
        """Generate EML XML for one dataset."""
        metadata = dataset.metadata
        pub_date = pub_date or date.today()

        eml = f"""<?xml version="1.0" encoding="UTF-8"?>
<eml:eml xmlns:eml="https://eml.ecoinformatics.org/eml-2.2.0"
         xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"
         xsi:schemaLocation="https://eml.ecoinformatics.org/eml-2.2.0 https://eml.ecoinformatics.org/eml-2.2.0/eml.xsd"
         packageId="{escape_xml(dataset.dataset_id)}"
         system="{escape_xml(self.base_url)}">

  <dataset>
    <title>{escape_xml(dataset.title)}</title>

    <creator>
      <individualName>
        <surName>{escape_xml(metadata.get('creator'))}</surName>
      </individualName>
    </creator>

    <pubDate>{pub_date.isoformat()}</pubDate>

    <abstract>
      <para>{escape_xml(metadata.get('abstract'))}</para>
    </abstract>"""

        if metadata.get('license'):
            eml += f"""

    <intellectualRights>
      <para>{escape_xml(metadata.get('license'))}</para>
    </intellectualRights>"""

        eml += f"""

    <distribution>
      <online>
        <url function="download">{escape_xml(archive_url(self.base_url, dataset.dataset_id))}</url>
      </online>
    </distribution>
  </dataset>

  <additionalMetadata>
    <metadata>
      <gbif>
        <citation>{escape_xml(metadata.get('citation'))}</citation>
      </gbif>
    </metadata>
  </additionalMetadata>
</eml:eml>
"""
        return eml


# ============================================================================
# META.XML MANIFEST
# ============================================================================

def field_terms(columns: List[str], registry: TermRegistry, schema: str) -> List[Tuple[int, str, str]]:
    """(index, column, term) for every column after the leading identifier column."""
    return [
        (index, column, registry.term_for(schema, column))
        for index, column in enumerate(columns)
        if index > 0
    ]


def build_meta_xml(occurrence_columns: List[str],
                   measurement_columns: List[str],
                   registry: TermRegistry) -> str:
    """Describe both tables and their field terms, in column order."""

    def fields(columns, schema):
        return "".join(
            f'\n    <field index="{index}" term="{escape_xml(term)}"/>'
            for index, _, term in field_terms(columns, registry, schema)
        )

    file_attrs = (
        'encoding="UTF-8" fieldsTerminatedBy="\\t" linesTerminatedBy="\\n" '
        'fieldsEnclosedBy="&quot;" ignoreHeaderLines="1"'
    )

    return f"""<?xml version="1.0" encoding="UTF-8"?>
<archive xmlns="http://rs.tdwg.org/dwc/text/" metadata="{EML_FILE}">
  <core {file_attrs} rowType="{escape_xml(registry.row_type(OCCURRENCE))}">
    <files>
      <location>{OCCURRENCE_FILE}</location>
    </files>
    <id index="0"/>{fields(occurrence_columns, OCCURRENCE)}
  </core>
  <extension {file_attrs} rowType="{escape_xml(registry.row_type(MEASUREMENT))}">
    <files>
      <location>{MEASUREMENT_FILE}</location>
    </files>
    <coreid index="0"/>{fields(measurement_columns, MEASUREMENT)}
  </extension>
</archive>
"""


# ============================================================================
# WRITE DARWIN CORE ARCHIVE
# ============================================================================

class DwCArchiveWriter:
    """Write the Darwin Core Archive files of one dataset."""

    def __init__(self, output_dir: Path, dataset_id: str):
        self.dataset_id = dataset_id
        self.output_dir = Path(output_dir) / dataset_id

    def prepare(self):
        """Clear any previous output for this dataset."""
        if self.output_dir.exists():
            shutil.rmtree(self.output_dir)
        self.output_dir.mkdir(parents=True)

    def write_table(self, df: pd.DataFrame, filename: str):
        """Write a core or extension file as tab-delimited."""
        filepath = self.output_dir / filename
        df.to_csv(filepath, sep='\t', index=False, encoding='utf-8', lineterminator='\n')
        logger.debug("Wrote %s (%d records)", filepath, len(df))

    def write_text(self, content: str, filename: str):
        with open(self.output_dir / filename, 'w', encoding='utf-8') as f:
            f.write(content)

    def create_zip_archive(self) -> Path:
        """Zip the archive files and remove the loose copies."""
        archive_path = self.output_dir / f"{self.dataset_id}.zip"

        with zipfile.ZipFile(archive_path, 'w', zipfile.ZIP_DEFLATED) as zipf:
            for file in ARCHIVE_FILES:
                zipf.write(self.output_dir / file, arcname=file)

        for file in ARCHIVE_FILES:
            (self.output_dir / file).unlink()

        return archive_path


class ArchiveAssembler:
    """Build one archive per dataset from the full flattened tables."""

    def __init__(self, registry: TermRegistry, output_dir: Path, base_url: str):
        self.registry = registry
        self.output_dir = Path(output_dir)
        self.eml_generator = EMLGenerator(base_url)

    @staticmethod
    def dataset_tables(dataset_id: str,
                       occurrence_df: pd.DataFrame,
                       measurement_df: pd.DataFrame) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """Rows of one dataset, identifier column first."""

        def select(df):
            rows = df[df[DATASET_ID] == dataset_id]
            columns = [RECORD_ID] + [c for c in df.columns if c != RECORD_ID]
            return rows[columns]

        return select(occurrence_df), select(measurement_df)

    def assemble(self,
                 dataset: Dataset,
                 occurrence_df: pd.DataFrame,
                 measurement_df: pd.DataFrame,
                 pub_date: Optional[date] = None) -> Path:
        """
        Write and package the archive of one dataset.

        Returns:
            Path of the zipped archive
        """
        occurrences, measurements = self.dataset_tables(dataset.dataset_id, occurrence_df, measurement_df)
        writer = DwCArchiveWriter(self.output_dir, dataset.dataset_id)

        try:
            writer.prepare()
            writer.write_table(occurrences, OCCURRENCE_FILE)
            writer.write_table(measurements, MEASUREMENT_FILE)
            writer.write_text(self.eml_generator.generate_eml_xml(dataset, pub_date), EML_FILE)
            writer.write_text(
                build_meta_xml(list(occurrences.columns), list(measurements.columns), self.registry),
                META_FILE,
            )
            archive_path = writer.create_zip_archive()
        except (OSError, zipfile.BadZipFile) as e:
            raise ArchiveError(
                "Could not write archive",
                context={"dataset_id": dataset.dataset_id},
                original_exception=e,
            )

        logger.info(
            "Wrote %s (%d occurrences, %d measurements)",
            archive_path, len(occurrences), len(measurements)
        )
        return archive_path

    def remove_stale(self, dataset_ids) -> List[Path]:
        """
        Delete dataset directories under the output directory whose dataset
        is not in ``dataset_ids``. Only directories holding an archive named
        after them are considered dataset output.

        Returns:
            Paths of the removed directories
        """
        if not self.output_dir.is_dir():
            return []

        keep = set(dataset_ids)
        removed = []
        for path in sorted(self.output_dir.iterdir()):
            if not path.is_dir() or path.name in keep:
                continue
            if not (path / f"{path.name}.zip").is_file():
                continue
            try:
                shutil.rmtree(path)
            except OSError as e:
                raise ArchiveError(
                    "Could not remove stale dataset output",
                    context={"dataset_id": path.name},
                    original_exception=e,
                )
            logger.info("Removed output of dataset %s, no longer in the export", path.name)
            removed.append(path)
        return removed
