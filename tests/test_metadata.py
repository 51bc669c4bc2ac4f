"""Tests for metadata whitelists."""

from __future__ import annotations

import pytest

from litestar_hil.core.metadata import validate_metadata
from litestar_hil.core.types import NotificationType
from litestar_hil.exceptions import MetadataValidationError


@pytest.mark.unit
class TestValidateMetadata:
    """Tests for validate_metadata."""

    def test_valid_metadata_passes(self) -> None:
        data = {"from_status": "IN_PROGRESS", "to_status": "COMPLETED", "confidence": 0.93, "retry_count": 1}

        assert validate_metadata("task.transitioned", data) == data

    def test_none_values_are_dropped(self) -> None:
        assert validate_metadata("task.transitioned", {"from_status": "IN_PROGRESS", "reason": None}) == {
            "from_status": "IN_PROGRESS"
        }

    def test_empty_metadata(self) -> None:
        assert validate_metadata("anything.at.all", None) == {}

    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(MetadataValidationError) as exc_info:
            validate_metadata("task.transitioned", {"password": "hunter2"})

        assert exc_info.value.errors == ["key 'password' is not allowed"]
        assert exc_info.value.code == "METADATA_INVALID"

    def test_wrong_type_rejected(self) -> None:
        with pytest.raises(MetadataValidationError, match="retry_count"):
            validate_metadata("task.transitioned", {"retry_count": "two"})

    def test_bool_is_not_an_int(self) -> None:
        with pytest.raises(MetadataValidationError):
            validate_metadata("task.transitioned", {"retry_count": True})

    def test_nested_values_rejected(self) -> None:
        with pytest.raises(MetadataValidationError):
            validate_metadata("task.transitioned", {"reason": {"nested": "dict"}})

    def test_string_lists(self) -> None:
        assert validate_metadata("workflow.cancelled", {"task_ids": ("a", "b")}) == {"task_ids": ["a", "b"]}
        with pytest.raises(MetadataValidationError, match="list of strings"):
            validate_metadata("workflow.cancelled", {"task_ids": [1, 2]})

    def test_notification_types_have_schemas(self) -> None:
        for notification_type in NotificationType:
            validate_metadata(notification_type, {"workflow_id": "w-1"})

    def test_unknown_kind(self) -> None:
        with pytest.raises(MetadataValidationError, match="no metadata schema"):
            validate_metadata("made.up", {"key": "value"})
