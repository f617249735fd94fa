"""Tests for the month index models"""

import json

import pytest
from pydantic import ValidationError

from starindex.models.index import IndexEntry, MonthIndex, MonthKey


def entry(year, month, start_page, count=0):
    return IndexEntry(year=year, month=month, start_page=start_page, article_count=count)


class TestMonthKey:
    def test_ordering_is_chronological(self):
        assert MonthKey(2023, 12) < MonthKey(2024, 1)
        assert MonthKey(2024, 2) > MonthKey(2024, 1)

    def test_label(self):
        assert MonthKey(2024, 3).label() == "2024-03"

    def test_of_rejects_invalid_month(self):
        with pytest.raises(ValueError):
            MonthKey.of(2024, 13)


class TestIndexEntry:
    def test_accepts_aliases(self):
        e = IndexEntry.model_validate(
            {"year": 2024, "month": 3, "startPage": 4, "articlesCount": 12}
        )
        assert e.start_page == 4
        assert e.article_count == 12
        assert e.key == MonthKey(2024, 3)

    def test_rejects_page_zero(self):
        with pytest.raises(ValidationError):
            IndexEntry(year=2024, month=3, start_page=0)

    def test_rejects_invalid_month(self):
        with pytest.raises(ValidationError):
            IndexEntry(year=2024, month=0, start_page=1)

    def test_accepts_pre_1970_year(self):
        e = IndexEntry(year=1969, month=12, start_page=40)
        assert e.key == MonthKey(1969, 12)

    def test_rejects_year_zero(self):
        with pytest.raises(ValidationError):
            IndexEntry(year=0, month=1, start_page=1)


class TestMergeEntry:
    def test_new_entry_is_added(self):
        index = MonthIndex()
        assert index.merge_entry(entry(2024, 3, 5)) is True
        assert index.find_start_page(2024, 3) == 5

    def test_smaller_start_page_tightens(self):
        index = MonthIndex()
        index.merge_entry(entry(2024, 3, 5))
        assert index.merge_entry(entry(2024, 3, 2)) is True
        assert index.find_start_page(2024, 3) == 2

    def test_larger_start_page_never_loosens(self):
        index = MonthIndex()
        index.merge_entry(entry(2024, 3, 2))
        assert index.merge_entry(entry(2024, 3, 9)) is False
        assert index.find_start_page(2024, 3) == 2

    def test_merge_is_idempotent(self):
        index = MonthIndex()
        index.merge_entry(entry(2024, 3, 2, count=7))
        before = index.model_dump()

        assert index.merge_entry(entry(2024, 3, 2, count=7)) is False
        assert index.model_dump() == before

    def test_article_count_keeps_maximum(self):
        index = MonthIndex()
        index.merge_entry(entry(2024, 3, 2, count=7))
        index.merge_entry(entry(2024, 3, 2, count=3))
        assert index.entry_for(2024, 3).article_count == 7

    def test_merged_entry_is_copied(self):
        index = MonthIndex()
        observed = entry(2024, 3, 5)
        index.merge_entry(observed)
        index.merge_entry(entry(2024, 3, 1))
        assert observed.start_page == 5


class TestMonthIndex:
    def test_months_newest_first(self):
        index = MonthIndex()
        for key in [(2023, 12), (2024, 2), (2024, 1)]:
            index.merge_entry(entry(*key, start_page=1))
        assert index.months() == [MonthKey(2024, 2), MonthKey(2024, 1), MonthKey(2023, 12)]

    def test_find_start_page_unknown_month(self):
        assert MonthIndex().find_start_page(2024, 3) is None

    def test_serialized_with_original_field_names(self):
        index = MonthIndex(total_articles=40)
        index.merge_entry(entry(2024, 1, 3, count=2))
        index.merge_entry(entry(2024, 2, 1, count=5))

        data = json.loads(index.model_dump_json(by_alias=True))

        assert data["totalArticles"] == 40
        assert "lastUpdated" in data
        assert data["entries"][0] == {
            "month": 2,
            "year": 2024,
            "startPage": 1,
            "articlesCount": 5,
        }
        assert data["entries"][1]["startPage"] == 3

    def test_loading_list_dedupes_to_smallest_page(self):
        data = {
            "entries": [
                {"year": 2024, "month": 3, "startPage": 6, "articlesCount": 1},
                {"year": 2024, "month": 3, "startPage": 4, "articlesCount": 9},
                {"year": 2024, "month": 2, "startPage": 7},
            ],
            "totalArticles": 100,
        }
        index = MonthIndex.model_validate(data)

        assert len(index) == 2
        assert index.find_start_page(2024, 3) == 4
        assert index.entry_for(2024, 3).article_count == 9

    def test_dump_then_load_preserves_entries(self):
        index = MonthIndex()
        index.merge_entry(entry(2024, 3, 1, count=2))
        index.merge_entry(entry(2023, 11, 8, count=4))

        loaded = MonthIndex.model_validate_json(index.model_dump_json(by_alias=True))

        assert loaded.sorted_entries() == index.sorted_entries()
