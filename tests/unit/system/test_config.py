"""
Unit tests for system/config.py - Analytics engine configuration.

Tests cover:
- AnalyticsConfig: Defaults and validation
- LoggingConfig: Defaults and conversion to the log_system model
- SystemConfig: load(), _from_dict(), merge, env substitution
- Singleton functions: get_system_config(), reload_system_config()
"""

from pathlib import Path

import pytest

from qjournal.system import config as config_module
from qjournal.system.config import (
    AnalyticsConfig,
    LoggingConfig,
    SystemConfig,
    _deep_merge,
    _substitute_env_vars,
    get_system_config,
    reload_system_config,
)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Run every test from an empty directory with no config env var."""
    monkeypatch.delenv("QJOURNAL_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    config_module._system_config = None


class TestAnalyticsConfig:
    """Test AnalyticsConfig dataclass."""

    def test_create_with_defaults(self):
        """Test AnalyticsConfig uses correct defaults."""
        # Arrange & Act
        config = AnalyticsConfig()

        # Assert
        assert config.default_portfolio_size == 100000.0
        assert config.risk_free_rate == 0.05
        assert config.periods_per_year == 252
        assert config.worker_threshold == 50
        assert config.xirr_cache_size == 2000
        assert config.xirr_max_iterations == 100
        assert config.xirr_tolerance == 1e-7

    @pytest.mark.parametrize(
        "field_name,value",
        [
            ("default_portfolio_size", 0),
            ("periods_per_year", 0),
            ("worker_threshold", -1),
            ("xirr_cache_size", 0),
            ("xirr_max_iterations", 0),
            ("xirr_tolerance", 0),
        ],
    )
    def test_rejects_invalid_values(self, field_name, value):
        """Test out-of-range settings raise ValueError."""
        with pytest.raises(ValueError, match=field_name):
            AnalyticsConfig(**{field_name: value})

    def test_zero_worker_threshold_allowed(self):
        """Test worker_threshold of 0 sends every batch to the worker."""
        config = AnalyticsConfig(worker_threshold=0)

        assert config.worker_threshold == 0


class TestLoggingConfig:
    """Test LoggingConfig dataclass."""

    def test_create_with_defaults(self):
        """Test LoggingConfig uses correct defaults."""
        # Arrange & Act
        config = LoggingConfig()

        # Assert
        assert config.level == "INFO"
        assert config.format == "console"
        assert config.timestamp_format == "compact"
        assert config.enable_file is False
        assert config.file_path == "logs/qjournal.log"
        assert config.file_level == "WARNING"
        assert config.file_rotation is True
        assert config.max_file_size_mb == 10
        assert config.backup_count == 3

    def test_to_logger_config(self):
        """Test conversion to the pydantic model used by LoggerFactory."""
        # Arrange
        config = LoggingConfig(level="DEBUG", format="json", file_path="out/app.log")

        # Act
        logger_config = config.to_logger_config()

        # Assert
        assert logger_config.level == "DEBUG"
        assert logger_config.format == "json"
        assert logger_config.file_path == Path("out/app.log")
        assert logger_config.enable_file is False


class TestSystemConfigLoad:
    """Test SystemConfig.load()."""

    def test_load_without_file_uses_defaults(self):
        """Test defaults when no config file exists."""
        config = SystemConfig.load()

        assert config.analytics == AnalyticsConfig()
        assert config.logging == LoggingConfig()

    def test_load_explicit_path_merges_partial_file(self, tmp_path):
        """Test a partial file only overrides the keys it names."""
        # Arrange
        path = tmp_path / "custom.yaml"
        path.write_text("analytics:\n  risk_free_rate: 0.03\nlogging:\n  level: DEBUG\n")

        # Act
        config = SystemConfig.load(path)

        # Assert
        assert config.analytics.risk_free_rate == 0.03
        assert config.analytics.periods_per_year == 252
        assert config.logging.level == "DEBUG"
        assert config.logging.format == "console"

    def test_load_default_location(self, tmp_path):
        """Test ./config/qjournal.yaml is picked up automatically."""
        # Arrange
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "qjournal.yaml").write_text("analytics:\n  worker_threshold: 10\n")

        # Act
        config = SystemConfig.load()

        # Assert
        assert config.analytics.worker_threshold == 10

    def test_load_from_env_var(self, tmp_path, monkeypatch):
        """Test $QJOURNAL_CONFIG wins over the default location."""
        # Arrange
        path = tmp_path / "env.yaml"
        path.write_text("analytics:\n  periods_per_year: 12\n")
        monkeypatch.setenv("QJOURNAL_CONFIG", str(path))

        # Act
        config = SystemConfig.load()

        # Assert
        assert config.analytics.periods_per_year == 12

    def test_load_ignores_unknown_keys(self, tmp_path):
        """Test unknown keys in a section are dropped."""
        path = tmp_path / "extra.yaml"
        path.write_text("analytics:\n  unknown_knob: 1\n  xirr_cache_size: 10\n")

        config = SystemConfig.load(path)

        assert config.analytics.xirr_cache_size == 10

    def test_load_empty_file(self, tmp_path):
        """Test an empty file yields defaults."""
        path = tmp_path / "empty.yaml"
        path.write_text("")

        config = SystemConfig.load(path)

        assert config.analytics == AnalyticsConfig()

    def test_load_invalid_yaml_raises(self, tmp_path):
        """Test malformed YAML raises ValueError."""
        path = tmp_path / "bad.yaml"
        path.write_text("analytics: [unclosed\n")

        with pytest.raises(ValueError, match="Invalid YAML"):
            SystemConfig.load(path)

    def test_load_non_mapping_raises(self, tmp_path):
        """Test a YAML list raises ValueError."""
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="must contain a mapping"):
            SystemConfig.load(path)

    def test_load_substitutes_env_vars(self, tmp_path, monkeypatch):
        """Test ${VAR} placeholders are resolved before validation."""
        # Arrange
        monkeypatch.setenv("QJ_LOG_LEVEL", "WARNING")
        path = tmp_path / "env_vars.yaml"
        path.write_text("logging:\n  level: ${QJ_LOG_LEVEL}\n  file_path: ${QJ_LOG_FILE:-logs/other.log}\n")

        # Act
        config = SystemConfig.load(path)

        # Assert
        assert config.logging.level == "WARNING"
        assert config.logging.file_path == "logs/other.log"


class TestHelpers:
    """Test merge and substitution helpers."""

    def test_deep_merge_nested(self):
        """Test nested dictionaries merge recursively without mutating base."""
        base = {"a": {"x": 1, "y": 2}, "b": 3}

        merged = _deep_merge(base, {"a": {"y": 20}, "c": 4})

        assert merged == {"a": {"x": 1, "y": 20}, "b": 3, "c": 4}
        assert base == {"a": {"x": 1, "y": 2}, "b": 3}

    def test_substitute_keeps_undefined_placeholder(self, monkeypatch):
        """Test undefined variables without default are left alone."""
        monkeypatch.delenv("QJ_UNDEFINED", raising=False)

        assert _substitute_env_vars("${QJ_UNDEFINED}") == "${QJ_UNDEFINED}"

    def test_substitute_recurses_into_lists(self, monkeypatch):
        """Test lists and dicts are walked."""
        monkeypatch.setenv("QJ_NAME", "journal")

        result = _substitute_env_vars({"items": ["${QJ_NAME}", 5]})

        assert result == {"items": ["journal", 5]}


class TestSingleton:
    """Test get_system_config() and reload_system_config()."""

    def test_get_system_config_is_cached(self):
        """Test the same instance is returned until reloaded."""
        first = get_system_config()
        second = get_system_config()

        assert first is second

    def test_reload_replaces_instance(self, tmp_path):
        """Test reload_system_config() reads the given path."""
        # Arrange
        first = get_system_config()
        path = tmp_path / "reload.yaml"
        path.write_text("analytics:\n  risk_free_rate: 0.01\n")

        # Act
        reloaded = reload_system_config(path)

        # Assert
        assert reloaded is not first
        assert get_system_config() is reloaded
        assert reloaded.analytics.risk_free_rate == 0.01
