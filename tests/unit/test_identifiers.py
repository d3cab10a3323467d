"""
Unit tests for dataset grouping and identifier derivation
"""

import pytest

from survey_dwca.exceptions import IdentifierCollisionError
from survey_dwca.identifiers import (
    CORRECTIONS,
    derive_dataset_id,
    derive_dataset_ids,
    group_datasets,
)


class TestDeriveDatasetId:
    """Test the title -> slug rule chain"""

    @pytest.mark.parametrize("title, expected", [
        ("Template Meiofaun", "meiofauna"),
        ("Biodiveristy Survey", "biodiversity_survey"),
        ("Sylt Meiofauna", "sylt_meiofauna"),
        ("North Sea   benthos", "north_sea_benthos"),
        ("Deep - sea -- nematodes", "deep-sea-nematodes"),
        ("Baltic Sea (2019) meiofauna!", "baltic_sea_2019_meiofauna"),
        ("  Template   Intertidal Biodiveristy  ", "intertidal_biodiversity"),
    ])
    def test_titles(self, title, expected):
        assert derive_dataset_id(title) == expected

    def test_meiofauna_spelled_correctly_is_untouched(self):
        assert derive_dataset_id("Template Meiofauna") == "meiofauna"

    def test_meiofaun_only_corrected_at_end(self):
        assert derive_dataset_id("Meiofaun survey") == "meiofaun_survey"

    def test_deterministic(self):
        titles = ["Template Meiofaun", "Biodiveristy Survey", "Gulf of Riga"]

        assert derive_dataset_ids(titles) == derive_dataset_ids(list(titles))

    def test_corrections_are_ordered_pairs(self):
        assert all(len(rule) == 2 for rule in CORRECTIONS)
        assert CORRECTIONS[0] == (r"\btemplate\b", "")


class TestDeriveDatasetIds:
    """Test the uniqueness invariant"""

    def test_bijection(self):
        titles = ["Template Meiofaun", "Biodiveristy Survey", "Sylt beach"]

        ids = derive_dataset_ids(titles)

        assert set(ids) == set(titles)
        assert len(set(ids.values())) == len(titles)

    def test_duplicate_titles_are_one_dataset(self):
        ids = derive_dataset_ids(["Sylt beach", "Sylt beach"])

        assert ids == {"Sylt beach": "sylt_beach"}

    def test_collision_is_fatal(self):
        with pytest.raises(IdentifierCollisionError) as exc_info:
            derive_dataset_ids(["Template Meiofaun", "Meiofauna"])

        assert "meiofauna" in exc_info.value.context["collisions"]

    def test_empty_identifier_is_fatal(self):
        with pytest.raises(IdentifierCollisionError):
            derive_dataset_ids(["Template"])


class TestGroupDatasets:
    """Test grouping records by title"""

    def test_groups_in_order_of_appearance(self, sample_records):
        datasets = group_datasets(sample_records)

        assert [d.dataset_id for d in datasets] == ["meiofauna", "biodiversity_survey"]
        assert [d.record_count for d in datasets] == [2, 1]

    def test_metadata_from_first_record(self, record_factory):
        first = record_factory("Sylt beach")
        second = record_factory("Sylt beach")
        second["Metadata"]["abstract"] = "Different abstract"

        dataset, = group_datasets([first, second])

        assert dataset.metadata["abstract"] == "Interstitial fauna of sandy beaches"
        assert dataset.metadata["creator"] == "Jane Doe"

    def test_record_without_title_is_skipped(self, record_factory):
        untitled = record_factory("Sylt beach")
        del untitled["Metadata"]["title"]

        dataset, = group_datasets([untitled, record_factory("Sylt beach")])

        assert dataset.dataset_id == "sylt_beach"
        assert dataset.record_count == 1
