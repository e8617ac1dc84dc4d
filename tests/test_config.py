"""Tests for config loading."""

import logging

import pytest
import yaml

from config_loader import get_sample_config, load_config, setup_logging


def _write(tmp_path, data) -> str:
    path = tmp_path / "daikin.yaml"
    path.write_text(yaml.safe_dump(data) if not isinstance(data, str) else data)
    return str(path)


class TestDefaults:
    """Tests for default values."""

    def test_no_path_gives_defaults(self) -> None:
        config = load_config()
        assert config["bind_address"] == "0.0.0.0:9150"
        assert config["discover_bind_address"] == "0.0.0.0:0"
        assert config["discover_major_interval"] == 300000
        assert config["discover_minor_interval"] == 200
        assert config["refresh_interval"] == 7500
        assert config["refresh_timeout"] == 250
        assert config["hosts"] == []
        assert config["logging"]["timezone"] == "UTC"

    def test_empty_file_gives_defaults(self, tmp_path) -> None:
        config = load_config(_write(tmp_path, ""))
        assert config["refresh_interval"] == 7500

    def test_defaults_not_shared(self) -> None:
        load_config()["hosts"].append("10.0.0.1")
        assert load_config()["hosts"] == []

    def test_sample_config_is_valid(self, tmp_path) -> None:
        config = load_config(_write(tmp_path, get_sample_config()))
        assert config["hosts"] == ["192.168.1.40", "bedroom-ac.lan"]


class TestOverrides:
    """Tests for values read from file."""

    def test_values_override(self, tmp_path) -> None:
        path = _write(tmp_path, {"refresh_interval": 100, "refresh_timeout": 20, "hosts": ["10.0.0.5"]})
        config = load_config(path)
        assert config["refresh_interval"] == 100
        assert config["refresh_timeout"] == 20
        assert config["hosts"] == ["10.0.0.5"]
        assert config["discover_major_interval"] == 300000

    def test_partial_logging_section(self, tmp_path) -> None:
        config = load_config(_write(tmp_path, {"logging": {"level": "DEBUG"}}))
        assert config["logging"]["level"] == "DEBUG"
        assert config["logging"]["console_output"] is True


class TestValidation:
    """Tests for rejected configurations."""

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))

    @pytest.mark.parametrize("data", [
        {"refresh_interval": 0},
        {"refresh_timeout": "fast"},
        {"discover_major_interval": 300, "discover_minor_interval": 200},
        {"hosts": "10.0.0.5"},
        {"hosts": [""]},
        {"query_groups": ["sensor", "firmware"]},
        {"query_groups": []},
        {"discover_port": 70000},
        {"bind_address": "0.0.0.0:http"},
        {"logging": {"timezone": "Mars/Olympus"}},
    ])
    def test_invalid(self, tmp_path, data) -> None:
        with pytest.raises(ValueError):
            load_config(_write(tmp_path, data))

    def test_invalid_yaml(self, tmp_path) -> None:
        with pytest.raises(ValueError):
            load_config(_write(tmp_path, "hosts: [unclosed"))

    def test_timeout_above_interval_warns(self, tmp_path, caplog) -> None:
        with caplog.at_level(logging.WARNING):
            load_config(_write(tmp_path, {"refresh_interval": 100, "refresh_timeout": 200}))
        assert "exceeds refresh_interval" in caplog.text


class TestLogging:
    """Tests for logging setup."""

    def test_file_handler(self, tmp_path) -> None:
        log_file = tmp_path / "logs" / "exporter.log"
        config = load_config()
        config["logging"].update({"file": str(log_file), "console_output": False, "timezone": "Europe/Paris"})
        setup_logging(config)
        try:
            logging.getLogger("test").warning("hello")
            assert "hello" in log_file.read_text()
        finally:
            root = logging.getLogger()
            for handler in list(root.handlers):
                if getattr(handler, "_exporter_handler", False):
                    root.removeHandler(handler)
                    handler.close()


class TestQueryGroups:
    """Tests for query group selection."""

    def test_optional_groups_warn(self, tmp_path, caplog) -> None:
        with caplog.at_level(logging.WARNING):
            config = load_config(_write(tmp_path, {"query_groups": ["basic", "sensor", "monitor"]}))
        assert config["query_groups"] == ["basic", "sensor", "monitor"]
        assert "monitor" in caplog.text
        assert "unreachable" in caplog.text

    def test_default_groups_do_not_warn(self, tmp_path, caplog) -> None:
        with caplog.at_level(logging.WARNING):
            load_config(_write(tmp_path, {"hosts": ["10.0.0.5"]}))
        assert "query_groups" not in caplog.text
