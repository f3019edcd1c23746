"""Tests for fireflow configuration and structured errors."""

import pytest

from fireflow.core.config import FireSettings, get_settings, load_environment, reset_settings
from fireflow.core.errors import ErrorFamily, FireError, fire_error


class TestFireSettings:
    """Tests for FireSettings defaults and environment overrides."""

    def test_defaults(self):
        settings = FireSettings()

        assert settings.dir_name == ".specs-fire"
        assert settings.state_file == "state.yaml"
        assert settings.runs_dir == "runs"
        assert settings.run_log_name == "run.md"
        assert settings.run_prefix == "run"
        assert settings.run_id_width == 3
        assert settings.default_checkpoint == "plan"
        assert settings.log_level == "WARNING"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("FIRE_DIR_NAME", ".fire")
        monkeypatch.setenv("FIRE_LOG_LEVEL", "debug")

        settings = FireSettings()

        assert settings.dir_name == ".fire"
        assert settings.log_level == "DEBUG"

    def test_invalid_log_level(self, monkeypatch):
        monkeypatch.setenv("FIRE_LOG_LEVEL", "chatty")
        with pytest.raises(ValueError, match="FIRE_LOG_LEVEL"):
            FireSettings()

    def test_invalid_width(self):
        with pytest.raises(ValueError, match="FIRE_RUN_ID_WIDTH"):
            FireSettings(run_id_width=0)

    def test_blank_layout_name(self):
        with pytest.raises(ValueError):
            FireSettings(dir_name="  ")

    def test_get_settings_cached(self, monkeypatch):
        first = get_settings()
        assert get_settings() is first

        monkeypatch.setenv("FIRE_RUN_PREFIX", "sprint")
        assert get_settings().run_prefix == "run"

        reset_settings()
        assert get_settings().run_prefix == "sprint"

    def test_load_environment_from_file(self, tmp_path, monkeypatch):
        env_file = tmp_path / "custom.env"
        env_file.write_text("FIRE_RUN_PREFIX=batch\n")
        monkeypatch.setenv("HOME", str(tmp_path))
        # Registered so monkeypatch removes the value load_dotenv sets
        monkeypatch.setenv("FIRE_RUN_PREFIX", "unset")
        monkeypatch.delenv("FIRE_RUN_PREFIX")

        load_environment(env_file)

        assert FireSettings().run_prefix == "batch"

    def test_workspace_uses_custom_dir(self, tmp_path, monkeypatch):
        from fireflow.core.workspace import init_workspace

        monkeypatch.setenv("FIRE_DIR_NAME", ".fire")
        reset_settings()

        workspace = init_workspace(tmp_path)

        assert workspace.state_path == tmp_path.resolve() / ".fire" / "state.yaml"
        assert workspace.state_path.is_file()


class TestFireError:
    """Tests for FireError formatting."""

    def test_str_format(self):
        error = fire_error(ErrorFamily.INIT, "010", "Work item is missing an id.", "Add an id.")

        assert error.code == "INIT_010"
        assert str(error) == "FIRE Error [INIT_010]: Work item is missing an id. Add an id."

    def test_family(self):
        assert fire_error(ErrorFamily.CHECKPOINT, "003", "m", "s").family == "CHECKPOINT"

    def test_to_dict(self):
        error = FireError("COMPLETE_040", "Run is not active.", "Start a run.")
        assert error.to_dict() == {
            "code": "COMPLETE_040",
            "message": "Run is not active.",
            "suggestion": "Start a run.",
        }

    def test_is_exception(self):
        with pytest.raises(FireError):
            raise fire_error(ErrorFamily.COMPLETE, "001", "rootPath is required.", "Provide one.")
