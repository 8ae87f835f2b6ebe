# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Unit tests for the utils module.
"""

import json
from datetime import date
from unittest.mock import patch

import pytest
from formfill_common.utils import (
    best_fuzzy_match,
    calculate_age,
    calculate_backoff,
    create_batches,
    extract_json_from_text,
    format_date,
    levenshtein_distance,
    merge_metering_data,
    normalize_key,
    parse_date,
    string_similarity,
)


@pytest.mark.unit
class TestNormalizeKey:
    def test_lowercases_and_joins_with_underscores(self):
        assert normalize_key("Patient's  Name:") == "patient_s_name"
        assert normalize_key("Date of Birth") == "date_of_birth"

    def test_trims_separators(self):
        assert normalize_key("  __Email__ ") == "email"

    def test_none_and_empty(self):
        assert normalize_key(None) == ""
        assert normalize_key("***") == ""


@pytest.mark.unit
class TestStringSimilarity:
    def test_levenshtein_distance(self):
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("same", "same") == 0

    def test_similarity_bounds(self):
        assert string_similarity("", "") == 1.0
        assert string_similarity("abc", "") == 0.0
        assert string_similarity("email", "email") == 1.0

    def test_similarity_is_symmetric(self):
        assert string_similarity("phone", "phones") == string_similarity("phones", "phone")
        assert string_similarity("phone", "phones") == pytest.approx(1 - 1 / 6)

    def test_best_fuzzy_match_strictly_above_threshold(self):
        # "abcd" vs "abce" scores exactly 0.75
        assert best_fuzzy_match("abcd", ["abce"], 0.75) is None
        assert best_fuzzy_match("abcd", ["abce"], 0.7) == ("abce", pytest.approx(0.75))

    def test_best_fuzzy_match_first_wins_ties(self):
        match = best_fuzzy_match("abcd", ["abcx", "abcy"], 0.5)
        assert match[0] == "abcx"

    def test_best_fuzzy_match_empty_candidates(self):
        assert best_fuzzy_match("email", [], 0.7) is None


@pytest.mark.unit
class TestDates:
    def test_parse_common_formats(self):
        assert parse_date("1990-05-15") == date(1990, 5, 15)
        assert parse_date("05/15/1990") == date(1990, 5, 15)
        assert parse_date("May 15, 1990") == date(1990, 5, 15)
        assert parse_date("2024-01-02T10:00:00Z") == date(2024, 1, 2)

    def test_parse_invalid(self):
        assert parse_date("not a date") is None
        assert parse_date("") is None
        assert parse_date(None) is None

    def test_format_date(self):
        assert format_date("1990-05-15") == "05/15/1990"
        assert format_date(date(2024, 3, 1), "%Y-%m-%d") == "2024-03-01"

    def test_format_date_passes_through_unparseable(self):
        assert format_date("sometime soon") == "sometime soon"

    def test_calculate_age(self):
        today = date(2024, 6, 1)
        assert calculate_age("2010-06-01", today) == 14
        assert calculate_age("2010-06-02", today) == 13
        assert calculate_age(None, today) is None


@pytest.mark.unit
class TestBatchesAndMetering:
    def test_create_batches(self):
        assert create_batches(list(range(5)), 2) == [[0, 1], [2, 3], [4]]
        assert create_batches([], 3) == []

    def test_create_batches_rejects_zero(self):
        with pytest.raises(ValueError):
            create_batches([1], 0)

    def test_merge_metering_data(self):
        merged = merge_metering_data(
            {"bedrock/model": {"inputTokens": 10, "outputTokens": 5}},
            {"bedrock/model": {"inputTokens": 3}, "textract/analyze_document": {"pages": 1}},
        )
        assert merged == {
            "bedrock/model": {"inputTokens": 13, "outputTokens": 5},
            "textract/analyze_document": {"pages": 1},
        }

    def test_calculate_backoff_is_capped(self):
        with patch("formfill_common.utils.random.uniform", return_value=0):
            assert calculate_backoff(0, 2, 300) == 2
            assert calculate_backoff(3, 2, 300) == 16
            assert calculate_backoff(20, 2, 300) == 300


@pytest.mark.unit
class TestExtractJsonFromText:
    def test_json_code_block(self):
        text = 'Result:\n```json\n{"fields": []}\n```'
        assert json.loads(extract_json_from_text(text)) == {"fields": []}

    def test_embedded_object(self):
        text = 'Here you go {"fields": [{"id": "a"}]} thanks'
        assert json.loads(extract_json_from_text(text)) == {"fields": [{"id": "a"}]}

    def test_bare_array_is_kept_whole(self):
        text = '[{"id": "a"}, {"id": "b"}]'
        assert json.loads(extract_json_from_text(text)) == [{"id": "a"}, {"id": "b"}]

    def test_array_inside_prose(self):
        text = 'Fields:\n[{"id": "a", "label": "Name [first]"}]\nDone.'
        assert json.loads(extract_json_from_text(text)) == [{"id": "a", "label": "Name [first]"}]

    def test_no_json_returns_original(self):
        assert extract_json_from_text("no json here") == "no json here"
