"""
Generate readable documentation of the column mapping schema.
One table per output class: column, source path, range and standard term.
"""

from pathlib import Path
from typing import Dict, List, Optional

import yaml

from survey_dwca.terms import TermRegistry


class SchemaDocGenerator:
    """Generate Markdown documentation from the mapping schema."""

    def __init__(self, schema_path: Path, registry: Optional[TermRegistry] = None):
        self.schema_path = Path(schema_path)
        with open(self.schema_path, 'r', encoding='utf-8') as f:
            self.schema = yaml.safe_load(f)

        self.registry = registry
        self.classes = self.schema.get('classes', {})
        self.slots = self.schema.get('slots', {})
        self.title = self.schema.get('title', '')
        self.description = self.schema.get('description', '')

    def generate_mappings_doc(self) -> str:
        """Generate documentation for the Darwin Core mappings."""

        doc = f"""# {self.title}

{self.description}

**Schema file**: `{self.schema_path.name}`

Every table also starts with two generated columns: `id` (a fresh record
identifier linking occurrences to their measurements) and `datasetID`.

---

"""

        for class_name, slots_list in self._group_slots_by_class().items():
            if not slots_list:
                continue

            class_desc = self.classes.get(class_name, {}).get('description', '')

            doc += f"## {class_name} Mappings\n\n"
            if class_desc:
                doc += f"{class_desc}\n\n"

            doc += "| Column | Source Path | Type | Term |\n"
            doc += "|--------|-------------|------|------|\n"

            for slot_name in slots_list:
                slot_def = self.slots.get(slot_name, {})
                exact_mappings = slot_def.get('exact_mappings', [])
                source = exact_mappings[0] if exact_mappings else '-'
                field_type = slot_def.get('range', 'string')
                term = self.registry.term_for(class_name, slot_name) if self.registry else ''
                doc += f"| **{slot_name}** | `{source}` | {field_type} | {term or '-'} |\n"

            doc += "\n---\n\n"

        return doc

    def _group_slots_by_class(self) -> Dict[str, List[str]]:
        """Slot names per class, in schema order."""
        return {
            class_name: class_def.get('slots', [])
            for class_name, class_def in self.classes.items()
        }
