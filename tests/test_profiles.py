"""Tests for kickstart.agents.profiles module."""

import json

import pytest

from kickstart.agents.profiles import (
    ACTIVE_CONFIG,
    BACKUP_CONFIG,
    IMPLEMENT_CONFIG,
    PLAN_CONFIG,
    PLAN_FILE_GLOBS,
    ProfileError,
    ensure_plan_profile,
    recover_stale_backup,
    require_implement_profile,
    swapped_profile,
)


def write_json(path, data):
    path.write_text(json.dumps(data))


class TestEnsurePlanProfile:
    """Restricted plan profile creation."""

    def test_creates_default(self, tmp_path):
        path = ensure_plan_profile(tmp_path)
        data = json.loads(path.read_text())
        edit = data["permission"]["edit"]
        assert edit["*"] == "deny"
        assert edit["/tmp/**"] == "allow"
        for glob in PLAN_FILE_GLOBS:
            assert edit[glob] == "allow"
        assert data["permission"]["bash"] == {"*": "allow"}

    def test_adds_missing_globs(self, tmp_path, caplog):
        write_json(tmp_path / PLAN_CONFIG, {"permission": {"edit": {"*": "deny"}}})
        ensure_plan_profile(tmp_path)
        edit = json.loads((tmp_path / PLAN_CONFIG).read_text())["permission"]["edit"]
        assert all(edit[glob] == "allow" for glob in PLAN_FILE_GLOBS)
        assert edit["*"] == "deny"
        assert "does not allow plan files" in caplog.text

    def test_leaves_complete_profile_untouched(self, tmp_path):
        path = tmp_path / PLAN_CONFIG
        edit = {"*": "deny", **{glob: "allow" for glob in PLAN_FILE_GLOBS}}
        original = json.dumps({"permission": {"edit": edit}}, indent=4)
        path.write_text(original)
        ensure_plan_profile(tmp_path)
        assert path.read_text() == original

    def test_unreadable_profile(self, tmp_path):
        (tmp_path / PLAN_CONFIG).write_text("{not json")
        with pytest.raises(ProfileError, match="Could not read"):
            ensure_plan_profile(tmp_path)


class TestImplementProfile:
    """The implement profile is user-provided."""

    def test_missing(self, tmp_path):
        with pytest.raises(ProfileError, match="Please create opencode.implement.json"):
            require_implement_profile(tmp_path)

    def test_invalid_permission_value(self, tmp_path):
        write_json(tmp_path / IMPLEMENT_CONFIG, {"permission": {"edit": "sometimes"}})
        with pytest.raises(ProfileError, match="Invalid profile"):
            require_implement_profile(tmp_path)


class TestSwappedProfile:
    """Activate a profile for one phase and always restore."""

    def test_restores_original(self, tmp_path):
        write_json(tmp_path / ACTIVE_CONFIG, {"user": True})
        with swapped_profile(tmp_path, restricted=True):
            active = json.loads((tmp_path / ACTIVE_CONFIG).read_text())
            assert active["permission"]["edit"]["*"] == "deny"
            assert (tmp_path / BACKUP_CONFIG).exists()
        assert json.loads((tmp_path / ACTIVE_CONFIG).read_text()) == {"user": True}
        assert not (tmp_path / BACKUP_CONFIG).exists()

    def test_removes_swapped_file_without_original(self, tmp_path):
        write_json(tmp_path / IMPLEMENT_CONFIG, {"permission": {"edit": "allow"}})
        with swapped_profile(tmp_path, restricted=False):
            assert (tmp_path / ACTIVE_CONFIG).exists()
        assert not (tmp_path / ACTIVE_CONFIG).exists()

    def test_restores_after_exception(self, tmp_path):
        write_json(tmp_path / ACTIVE_CONFIG, {"user": True})
        with pytest.raises(RuntimeError):
            with swapped_profile(tmp_path, restricted=True):
                raise RuntimeError("agent crashed")
        assert json.loads((tmp_path / ACTIVE_CONFIG).read_text()) == {"user": True}

    def test_missing_implement_profile_leaves_config_alone(self, tmp_path):
        write_json(tmp_path / ACTIVE_CONFIG, {"user": True})
        with pytest.raises(ProfileError):
            with swapped_profile(tmp_path, restricted=False):
                pass
        assert json.loads((tmp_path / ACTIVE_CONFIG).read_text()) == {"user": True}

    def test_recovers_stale_backup(self, tmp_path, caplog):
        write_json(tmp_path / ACTIVE_CONFIG, {"swapped": True})
        write_json(tmp_path / BACKUP_CONFIG, {"user": True})
        assert recover_stale_backup(tmp_path) is True
        assert json.loads((tmp_path / ACTIVE_CONFIG).read_text()) == {"user": True}
        assert "stale" in caplog.text
