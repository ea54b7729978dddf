"""Tests for schema validation of written files."""

import json
from datetime import datetime

import pytest

from kickstart.lib.validate import ValidationError, get_validator, validate, write_json


def result_data(**overrides):
    data = {
        "status": "complete",
        "mode": "full",
        "started_at": datetime(2026, 1, 1).isoformat(),
        "ended_at": datetime(2026, 1, 1, 0, 5).isoformat(),
        "stages": {"plan": {"status": "passed", "duration_s": 1.5, "notes": ""}},
    }
    data.update(overrides)
    return data


class TestValidate:
    """Schema checks."""

    def test_valid_result(self):
        validate(result_data(), "result")

    def test_bad_enum_names_location(self):
        with pytest.raises(ValidationError, match=r"\[result\] .* at status"):
            validate(result_data(status="done"), "result")

    def test_multiple_errors_listed(self):
        data = result_data(status="done")
        data["stages"]["plan"]["duration_s"] = -1
        with pytest.raises(ValidationError, match="also:"):
            validate(data, "result")

    def test_unknown_schema(self):
        with pytest.raises(ValidationError, match="Unknown schema"):
            get_validator("nope")

    def test_profile_schema(self):
        validate({"permission": {"edit": {"*": "deny"}}}, "agent_profile")


class TestWriteJson:
    """Validated writes."""

    def test_writes_indented(self, tmp_path):
        path = write_json(result_data(), "result", tmp_path / "result.json")
        assert json.loads(path.read_text())["status"] == "complete"
        assert path.read_text().endswith("}\n")

    def test_invalid_data_not_written(self, tmp_path):
        target = tmp_path / "result.json"
        with pytest.raises(ValidationError, match="Not writing result.json"):
            write_json(result_data(mode="other"), "result", target)
        assert not target.exists()
