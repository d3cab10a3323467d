"""
Record flattening driven by a LinkML-style mapping schema.

The schema names, for every output column, the single source path it is read
from (``SubStructure:field``). Nested export records are projected onto those
columns and cleaned on the way out.
"""

import logging
import math
import re
import uuid
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd
import yaml

from survey_dwca.exceptions import SchemaValidationError

logger = logging.getLogger(__name__)

OCCURRENCE = "Occurrence"
MEASUREMENT = "MeasurementOrFact"

# Sub-structures every export record may carry
SUBSTRUCTURES = (
    "Metadata",
    "Occurrence",
    "Event",
    "Location",
    "Identification",
    "Record-level",
    "Taxon",
    "MeasurementOrFact",
)

RANGES = ("string", "float", "integer")

RECORD_ID = "id"
DATASET_ID = "datasetID"

PLACEHOLDERS = frozenset({"indet", "indet.", "Not Reported"})
BASIS_OF_RECORD = "HumanObservation"

_NEWLINE_ESCAPES = re.compile(r"(\\r)?\\n|\r?\n|\r")
_WHITESPACE = re.compile(r"\s+")


def clean_value(value: Any) -> Any:
    """
    Normalize one scalar from the export.

    Strings lose embedded newline escapes and redundant whitespace; empty
    strings and placeholder tokens become None. Other scalars pass through.
    """
    if not isinstance(value, str):
        return value
    value = _NEWLINE_ESCAPES.sub(" ", value)
    value = _WHITESPACE.sub(" ", value).strip()
    if not value or value in PLACEHOLDERS:
        return None
    return value


def record_title(record: Any) -> Optional[str]:
    """Cleaned Metadata.title of a raw record, or None if it has none."""
    metadata = record.get('Metadata') if isinstance(record, Mapping) else None
    title = clean_value(metadata.get('title')) if isinstance(metadata, Mapping) else None
    return title if isinstance(title, str) else None


def titled_records(records: Iterable[Any]) -> Iterable[Tuple[int, Mapping, str]]:
    """
    Yield (index, record, title) for every record carrying a title.
    Records without one belong to no dataset and are skipped.
    """
    for index, record in enumerate(records):
        title = record_title(record)
        if title is None:
            logger.warning("Skipping export record %d: no Metadata.title", index)
            continue
        yield index, record, title


class MappingEngine:
    """
    Flattens nested export records into Occurrence and MeasurementOrFact rows
    according to the exact_mappings of a mapping schema.
    """

    def __init__(self, mapping_schema_path):
        """
        Initialize the mapping engine and validate the schema.

        Args:
            mapping_schema_path: Path to the mapping schema YAML file
        """
        self.schema_path = Path(mapping_schema_path)
        self.schema = self._load_schema()
        self.classes = self.schema.get('classes') or {}
        self.slots = self.schema.get('slots') or {}
        self._mappings = {
            class_name: self._get_slot_mappings(class_name)
            for class_name in (OCCURRENCE, MEASUREMENT)
        }

    def _load_schema(self) -> Dict:
        """Load and parse the mapping schema YAML file."""
        try:
            with open(self.schema_path, 'r', encoding='utf-8') as f:
                schema = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise SchemaValidationError(
                "Could not load mapping schema",
                context={"path": str(self.schema_path)},
                original_exception=e,
            )
        if not isinstance(schema, dict):
            raise SchemaValidationError(
                "Mapping schema must be a mapping", context={"path": str(self.schema_path)}
            )
        return schema

    @staticmethod
    def _split_path(mapping: str) -> List[str]:
        """
        Split a mapping string into path segments.

        "Location:decimalLatitude" -> ["Location", "decimalLatitude"]
        """
        return [segment.strip() for segment in mapping.split(':')]

    def _get_slot_mappings(self, class_name: str) -> List[Tuple[str, List[str], str]]:
        """
        Validate and return (column, source path, range) for every slot of a class.

        Raises:
            SchemaValidationError: if the class or any of its slots is malformed
        """
        if class_name not in self.classes:
            raise SchemaValidationError(
                f"Class '{class_name}' not found in schema", context={"class_name": class_name}
            )

        slot_names = self.classes[class_name].get('slots') or []
        if not slot_names:
            raise SchemaValidationError(
                f"Class '{class_name}' has no slots", context={"class_name": class_name}
            )

        mappings = []
        for slot_name in slot_names:
            slot_def = self.slots.get(slot_name)
            if slot_def is None:
                raise SchemaValidationError(
                    f"Slot '{slot_name}' is not defined", context={"slot": slot_name}
                )

            exact_mappings = slot_def.get('exact_mappings') or []
            if len(exact_mappings) != 1:
                raise SchemaValidationError(
                    f"Slot '{slot_name}' requires exactly one exact_mapping, "
                    f"found {len(exact_mappings)}",
                    context={"slot": slot_name},
                )

            path = self._split_path(exact_mappings[0])
            if len(path) < 2 or path[0] not in SUBSTRUCTURES:
                raise SchemaValidationError(
                    f"Slot '{slot_name}' maps from unknown source '{exact_mappings[0]}'",
                    context={"slot": slot_name},
                )
            if (path[0] == MEASUREMENT) != (class_name == MEASUREMENT):
                raise SchemaValidationError(
                    f"Slot '{slot_name}' of {class_name} cannot read from {path[0]}",
                    context={"slot": slot_name, "class_name": class_name},
                )
            if path[-1] != slot_name:
                raise SchemaValidationError(
                    f"Slot '{slot_name}' must be named after its source field '{path[-1]}'",
                    context={"slot": slot_name},
                )

            target_range = slot_def.get('range', 'string')
            if target_range not in RANGES:
                raise SchemaValidationError(
                    f"Slot '{slot_name}' has unsupported range '{target_range}'",
                    context={"slot": slot_name},
                )

            mappings.append((slot_name, path, target_range))

        return mappings

    def column_names(self, target_class: str) -> List[str]:
        """Output columns for a class, generated columns first."""
        return [RECORD_ID, DATASET_ID] + [column for column, _, _ in self._mappings[target_class]]

    @staticmethod
    def _convert_type(value: Any, target_range: str) -> Any:
        """
        Convert a cleaned value to the target range.

        Returns None if conversion fails.
        """
        if value is None:
            return None

        if target_range == 'string':
            return str(value)

        if isinstance(value, bool):
            return None
        try:
            number = float(value)
        except (ValueError, TypeError):
            return None
        if math.isnan(number) or math.isinf(number):
            return None

        if target_range == 'integer':
            return int(number) if number.is_integer() else None
        return number

    @staticmethod
    def _lookup(source: Mapping, path: Iterable[str]) -> Any:
        value = source
        for segment in path:
            if not isinstance(value, Mapping):
                return None
            value = value.get(segment)
        return value

    def _project(self, source: Mapping, target_class: str, skip: int) -> Dict[str, Any]:
        row = {}
        for column, path, target_range in self._mappings[target_class]:
            value = self._lookup(source, path[skip:])
            if isinstance(value, (dict, list)):
                logger.warning("Expected a scalar at '%s', got %s; leaving it empty",
                               ':'.join(path), type(value).__name__)
                value = None
            row[column] = self._convert_type(clean_value(value), target_range)
        return row

    @staticmethod
    def validate_record(record: Mapping, index: Optional[int] = None) -> List[str]:
        """
        Names of the sub-structures of a raw record with an unexpected type.
        Those sub-structures are read as missing.
        """
        invalid = []
        for name in SUBSTRUCTURES:
            part = record.get(name)
            if part is None:
                continue
            allowed = (Mapping, list) if name == MEASUREMENT else (Mapping,)
            if not isinstance(part, allowed):
                logger.warning(
                    "Record %s: sub-structure '%s' has unexpected type %s; treating it as missing",
                    index, name, type(part).__name__
                )
                invalid.append(name)
        return invalid

    def flatten_occurrence(self, record: Mapping, dataset_id: str, record_id: str) -> Dict[str, Any]:
        """Project one export record onto an Occurrence row."""
        row = {RECORD_ID: record_id, DATASET_ID: dataset_id}
        row.update(self._project(record, OCCURRENCE, skip=0))
        row['basisOfRecord'] = BASIS_OF_RECORD
        return row

    def flatten_measurements(self, record: Mapping, dataset_id: str, record_id: str) -> List[Dict[str, Any]]:
        """
        Project one export record onto zero or more MeasurementOrFact rows.
        Rows without a measurementType or measurementValue are dropped.
        """
        facts = record.get(MEASUREMENT) or []
        if isinstance(facts, Mapping):
            facts = [facts]
        elif not isinstance(facts, list):
            facts = []

        rows = []
        for fact in facts:
            if not isinstance(fact, Mapping):
                logger.warning("Skipping MeasurementOrFact entry of type %s for %s",
                               type(fact).__name__, record_id)
                continue
            row = {RECORD_ID: record_id, DATASET_ID: dataset_id}
            row.update(self._project(fact, MEASUREMENT, skip=1))
            if row.get('measurementType') is None or row.get('measurementValue') is None:
                continue
            rows.append(row)
        return rows

    def transform_records(self,
                          records: List[Mapping],
                          dataset_ids: Mapping[str, str]) -> Tuple[pd.DataFrame, pd.DataFrame]:
        """
        Flatten every export record into the two output tables.

        Args:
            records: Raw export records; untitled ones are skipped
            dataset_ids: Dataset title -> derived dataset identifier

        Returns:
            Tuple of (occurrence_df, measurement_df)
        """
        occurrences = []
        measurements = []

        for index, record in enumerate(records):
            title = record_title(record)
            if title is None:
                continue
            self.validate_record(record, index)
            dataset_id = dataset_ids[title]
            record_id = str(uuid.uuid4())

            occurrences.append(self.flatten_occurrence(record, dataset_id, record_id))
            measurements.extend(self.flatten_measurements(record, dataset_id, record_id))

        occurrence_df = pd.DataFrame(occurrences, columns=self.column_names(OCCURRENCE), dtype=object)
        measurement_df = pd.DataFrame(measurements, columns=self.column_names(MEASUREMENT), dtype=object)

        logger.info(
            "Flattened %d records into %d occurrences and %d measurements",
            len(records), len(occurrence_df), len(measurement_df)
        )
        return occurrence_df, measurement_df
