"""Tests for configuration management."""

from pathlib import Path

import pytest

from .lib import (
    EnvConfig,
    EnvVar,
    ensure_data_dirs,
    get_data_dir,
    get_environment,
    get_environment_info,
    get_load_timeout,
    get_max_loaded_models,
    get_models_dir,
    get_registry_path,
    list_environment_variables,
)

# =============================================================================
# Tests for get_environment (main interface)
# =============================================================================


class TestGetEnvironment:
    """Tests for the unified get_environment interface."""

    @pytest.mark.unit
    def test_returns_default_when_not_set(self, monkeypatch):
        """Returns default value when env var is not set."""
        monkeypatch.delenv("EMBEDDY_PORT", raising=False)
        assert get_environment(EnvVar.EMBEDDY_PORT) == 8080

    @pytest.mark.unit
    def test_override_takes_priority(self, monkeypatch):
        """Override parameter takes highest priority."""
        monkeypatch.setenv("EMBEDDY_PORT", "9999")
        assert get_environment(EnvVar.EMBEDDY_PORT, override=5000) == 5000

    @pytest.mark.unit
    def test_env_var_overrides_default(self, monkeypatch):
        """Environment variable overrides default value."""
        monkeypatch.setenv("EMBEDDY_PORT", "12345")
        result = get_environment(EnvVar.EMBEDDY_PORT)
        assert result == 12345
        assert isinstance(result, int)

    @pytest.mark.unit
    def test_invalid_int_falls_back_to_default(self, monkeypatch):
        """Unparseable integers fall back to the default."""
        monkeypatch.setenv("EMBEDDY_PORT", "not-a-port")
        assert get_environment(EnvVar.EMBEDDY_PORT) == 8080

    @pytest.mark.unit
    def test_bool_type_conversion(self, monkeypatch):
        """Boolean type conversion for true and false values."""
        for value in ("true", "1", "yes", "TRUE"):
            monkeypatch.setenv("EMBEDDY_NORMALIZE", value)
            assert get_environment(EnvVar.EMBEDDY_NORMALIZE) is True
        for value in ("false", "0", "no", "No"):
            monkeypatch.setenv("EMBEDDY_NORMALIZE", value)
            assert get_environment(EnvVar.EMBEDDY_NORMALIZE) is False

    @pytest.mark.unit
    def test_unrecognized_bool_uses_default(self, monkeypatch):
        """Unrecognized boolean strings use the default."""
        monkeypatch.setenv("EMBEDDY_NORMALIZE", "maybe")
        assert get_environment(EnvVar.EMBEDDY_NORMALIZE) is False

    @pytest.mark.unit
    def test_path_type_conversion(self, monkeypatch, tmp_path):
        """Path variables are returned as Path objects."""
        monkeypatch.setenv("EMBEDDY_DATA_DIR", str(tmp_path))
        result = get_environment(EnvVar.EMBEDDY_DATA_DIR)
        assert isinstance(result, Path)
        assert result == tmp_path

    @pytest.mark.unit
    def test_optional_string_defaults_to_none(self, monkeypatch):
        """Unset optional strings return None."""
        monkeypatch.delenv("HF_TOKEN", raising=False)
        assert get_environment(EnvVar.HF_TOKEN) is None


class TestEnvironmentInfo:
    """Tests for metadata introspection."""

    @pytest.mark.unit
    def test_info_returns_env_config(self):
        """get_environment_info returns the EnvConfig for a variable."""
        info = get_environment_info(EnvVar.EMBEDDY_LOG_LEVEL)
        assert isinstance(info, EnvConfig)
        assert info.name == "EMBEDDY_LOG_LEVEL"
        assert info.default == "INFO"

    @pytest.mark.unit
    def test_every_variable_has_description(self):
        """All variables carry a description and category."""
        for var in EnvVar:
            assert var.value.description, f"{var} missing description"
            assert var.value.category, f"{var} missing category"

    @pytest.mark.unit
    def test_list_by_category(self):
        """Filtering by category returns only that category."""
        service = list_environment_variables("service")
        assert set(service) == {EnvVar.EMBEDDY_HOST, EnvVar.EMBEDDY_PORT}
        assert len(list_environment_variables()) == len(EnvVar)


class TestDataPaths:
    """Tests for data directory helpers."""

    @pytest.mark.unit
    def test_override_wins(self, tmp_path, monkeypatch):
        """Explicit override beats the environment."""
        monkeypatch.setenv("EMBEDDY_DATA_DIR", "/somewhere/else")
        assert get_data_dir(tmp_path) == tmp_path

    @pytest.mark.unit
    def test_env_var_used(self, tmp_path, monkeypatch):
        """EMBEDDY_DATA_DIR is used when no override is given."""
        monkeypatch.setenv("EMBEDDY_DATA_DIR", str(tmp_path))
        assert get_data_dir() == tmp_path
        assert get_models_dir() == tmp_path / "models"
        assert get_registry_path() == tmp_path / "registry.json"

    @pytest.mark.unit
    def test_default_under_home(self, monkeypatch):
        """Defaults to ~/.embeddy."""
        monkeypatch.delenv("EMBEDDY_DATA_DIR", raising=False)
        assert get_data_dir() == Path.home() / ".embeddy"

    @pytest.mark.unit
    def test_ensure_data_dirs_creates_tree(self, tmp_path):
        """ensure_data_dirs creates data and models directories."""
        data_dir = tmp_path / "fresh"
        ensure_data_dirs(data_dir)
        assert data_dir.is_dir()
        assert (data_dir / "models").is_dir()

    @pytest.mark.unit
    def test_max_loaded_models(self, monkeypatch):
        """Zero or negative capacity means unbounded."""
        monkeypatch.setenv("EMBEDDY_MAX_LOADED_MODELS", "0")
        assert get_max_loaded_models() is None
        monkeypatch.setenv("EMBEDDY_MAX_LOADED_MODELS", "3")
        assert get_max_loaded_models() == 3

    @pytest.mark.unit
    def test_load_timeout(self, monkeypatch):
        """Unset, zero, or unparsable timeouts mean wait indefinitely."""
        monkeypatch.delenv("EMBEDDY_LOAD_TIMEOUT", raising=False)
        assert get_load_timeout() is None
        monkeypatch.setenv("EMBEDDY_LOAD_TIMEOUT", "soon")
        assert get_load_timeout() is None
        monkeypatch.setenv("EMBEDDY_LOAD_TIMEOUT", "2.5")
        assert get_load_timeout() == 2.5
