"""
Unit tests for validation module.

Tests work item id, field map and required-argument validation.
"""

import pytest
from ado_orchestrator.validation import (
    ValidationError,
    require,
    validate_fields,
    validate_work_item_id,
    validate_work_item_ids,
)


class TestWorkItemIdValidation:
    """Test work item id validation."""

    def test_valid_id(self):
        assert validate_work_item_id(42) == 42

    @pytest.mark.parametrize("value", [0, -1, "12", 1.5, None, True])
    def test_invalid_ids(self, value):
        """Test that non-positive or non-int ids are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            validate_work_item_id(value)
        assert "positive integer" in str(exc_info.value)

    def test_name_in_message(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_work_item_id(0, "story_id")
        assert "story_id" in str(exc_info.value)

    def test_many_deduplicates_in_order(self):
        assert validate_work_item_ids([3, 1, 3, 2]) == [3, 1, 2]

    @pytest.mark.parametrize("value", [None, [], "1,2"])
    def test_many_rejects_empty_or_string(self, value):
        with pytest.raises(ValidationError):
            validate_work_item_ids(value)

    def test_many_rejects_invalid_member(self):
        with pytest.raises(ValidationError):
            validate_work_item_ids([1, -2])


class TestFieldValidation:
    """Test field map validation."""

    def test_valid_fields(self):
        fields = {"System.State": "Active"}
        assert validate_fields(fields) is fields

    def test_none_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_fields(None)
        assert "fields are required" in str(exc_info.value)

    def test_none_allowed_when_empty_allowed(self):
        assert validate_fields(None, allow_empty=True) == {}

    def test_empty_rejected(self):
        with pytest.raises(ValidationError):
            validate_fields({})

    def test_non_mapping_rejected(self):
        with pytest.raises(ValidationError):
            validate_fields([("System.State", "Active")])

    def test_blank_key_rejected(self):
        with pytest.raises(ValidationError):
            validate_fields({"  ": "x"})


class TestRequire:
    """Test require helper."""

    def test_present(self):
        assert require("Sprint 1", "sprint") == "Sprint 1"
        assert require(0, "count") == 0

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_missing(self, value):
        with pytest.raises(ValidationError) as exc_info:
            require(value, "story_title")
        assert str(exc_info.value) == "story_title is required"
