"""Tests for MonitorConfig and LogPaths."""

from datetime import datetime
from pathlib import Path

import pytest

from hostmon.config import DEFAULT_LOG_DIR, LogPaths, MonitorConfig
from hostmon.exceptions import ConfigError


class TestMonitorConfig:
    """Tests for MonitorConfig defaults, validation and overrides."""

    def test_defaults(self):
        config = MonitorConfig()

        assert config.interval_seconds == 30.0
        assert config.cpu_threshold == 80.0
        assert config.memory_threshold == 80.0
        assert config.top_n == 10
        assert config.log_max_bytes == 10485760
        assert config.log_dir == DEFAULT_LOG_DIR
        assert config.stop_grace_seconds == 2.0

    def test_config_is_frozen(self):
        config = MonitorConfig()
        with pytest.raises(AttributeError):
            config.top_n = 3

    @pytest.mark.parametrize(
        "field_name, value",
        [
            ("interval_seconds", 0),
            ("interval_seconds", float("nan")),
            ("interval_seconds", float("inf")),
            ("cpu_threshold", float("nan")),
            ("memory_threshold", float("inf")),
            ("stop_grace_seconds", float("nan")),
            ("cpu_threshold", -1),
            ("memory_threshold", 101),
            ("top_n", 0),
            ("log_max_bytes", 0),
        ],
    )
    def test_invalid_values_raise(self, field_name, value):
        with pytest.raises(ConfigError) as excinfo:
            MonitorConfig(**{field_name: value})
        assert excinfo.value.field_name == field_name

    def test_log_dir_accepts_strings(self, tmp_path):
        config = MonitorConfig(log_dir=str(tmp_path))
        assert config.log_dir == tmp_path

    def test_with_overrides_ignores_none(self):
        config = MonitorConfig()
        updated = config.with_overrides(cpu_threshold=50.0, top_n=None)

        assert updated.cpu_threshold == 50.0
        assert updated.top_n == 10
        assert config.cpu_threshold == 80.0

    def test_with_overrides_validates(self):
        with pytest.raises(ConfigError):
            MonitorConfig().with_overrides(interval_seconds=-2)


class TestFromEnv:
    """Tests for environment variable configuration."""

    def test_empty_environment_gives_defaults(self):
        assert MonitorConfig.from_env({}) == MonitorConfig()

    def test_reads_all_variables(self, tmp_path):
        config = MonitorConfig.from_env(
            {
                "HOSTMON_LOG_DIR": str(tmp_path),
                "HOSTMON_INTERVAL": "5",
                "HOSTMON_CPU_THRESHOLD": "90.5",
                "HOSTMON_MEMORY_THRESHOLD": "70",
                "HOSTMON_TOP_N": "3",
                "HOSTMON_LOG_MAX_BYTES": "2048",
                "HOSTMON_MONTHLY_LOGS": "no",
            }
        )

        assert config.log_dir == tmp_path
        assert config.interval_seconds == 5.0
        assert config.cpu_threshold == 90.5
        assert config.memory_threshold == 70.0
        assert config.top_n == 3
        assert config.log_max_bytes == 2048
        assert config.monthly_logs is False

    def test_blank_values_are_ignored(self):
        assert MonitorConfig.from_env({"HOSTMON_TOP_N": "  "}).top_n == 10

    @pytest.mark.parametrize(
        "var, raw",
        [
            ("HOSTMON_TOP_N", "ten"),
            ("HOSTMON_INTERVAL", "fast"),
            ("HOSTMON_MONTHLY_LOGS", "maybe"),
        ],
    )
    def test_unparseable_values_raise(self, var, raw):
        with pytest.raises(ConfigError) as excinfo:
            MonitorConfig.from_env({var: raw})
        assert excinfo.value.field_name == var

    @pytest.mark.parametrize("raw", ["nan", "inf", "-inf"])
    def test_non_finite_interval_is_rejected(self, raw):
        with pytest.raises(ConfigError) as excinfo:
            MonitorConfig.from_env({"HOSTMON_INTERVAL": raw})
        assert excinfo.value.field_name == "interval_seconds"


class TestLogPaths:
    """Tests for log file naming."""

    def test_monthly_names(self):
        paths = LogPaths(Path("/var/log/hostmon"), monthly=True)
        now = datetime(2026, 3, 9)

        assert paths.normal_log(now) == Path("/var/log/hostmon/monitor_202603.log")
        assert paths.alert_log(now) == Path("/var/log/hostmon/monitor_alert_202603.log")

    def test_single_file_names(self):
        paths = LogPaths(Path("/var/log/hostmon"), monthly=False)

        assert paths.normal_log() == Path("/var/log/hostmon/monitor.log")
        assert paths.alert_log() == Path("/var/log/hostmon/monitor_alert.log")

    def test_pid_file(self, tmp_path):
        assert MonitorConfig(log_dir=tmp_path).paths.pid_file == tmp_path / "monitor.pid"
