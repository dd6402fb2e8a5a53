"""Tests for ehr_config -- defaults, YAML overrides, env overrides, logging."""

import logging
import os
from unittest.mock import patch

import pytest

import ehr_config
from agent.redact import RedactingFormatter
from ehr_config import DEFAULT_CONFIG, get_config_path, get_ehr_home, load_config, load_env, setup_logging


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("EHR_MODEL", raising=False)
    monkeypatch.delenv("EHR_DOWNLOAD_DIR", raising=False)


class TestPaths:
    def test_home_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("EHR_SYSTEM_HOME", str(tmp_path))
        assert get_ehr_home() == tmp_path
        assert get_config_path() == tmp_path / "config.yaml"

    def test_default_home(self, monkeypatch):
        monkeypatch.delenv("EHR_SYSTEM_HOME", raising=False)
        assert get_ehr_home().name == ".ehr-system"


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "nope.yaml")
        assert config == DEFAULT_CONFIG
        assert config is not DEFAULT_CONFIG

    def test_yaml_merges_sections(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("download:\n  fallback_timeout_s: 10\ndisplay:\n  width: 1280\n")

        config = load_config(path)

        assert config["download"]["fallback_timeout_s"] == 10
        assert config["download"]["listen_timeout_ms"] == 300000
        assert config["display"] == {"width": 1280, "height": 768}

    def test_defaults_not_mutated(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("agent:\n  debug: false\n")

        load_config(path)
        assert DEFAULT_CONFIG["agent"]["debug"] is True

    def test_malformed_yaml_ignored(self, tmp_path, caplog):
        path = tmp_path / "config.yaml"
        path.write_text("download: [unclosed\n")

        with caplog.at_level(logging.WARNING, logger="ehr_config"):
            config = load_config(path)

        assert config == DEFAULT_CONFIG
        assert "malformed" in caplog.text

    def test_non_mapping_ignored(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        assert load_config(path) == DEFAULT_CONFIG

    def test_env_overrides_win(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("model: from-yaml\n")
        monkeypatch.setenv("EHR_MODEL", "from-env")
        monkeypatch.setenv("EHR_DOWNLOAD_DIR", str(tmp_path / "dl"))

        config = load_config(path)

        assert config["model"] == "from-env"
        assert config["download"]["save_dir"] == str(tmp_path / "dl")


class TestLoadEnv:
    def test_does_not_override_existing(self, tmp_path, monkeypatch):
        (tmp_path / ".env").write_text("OPENAI_API_KEY=from-file\nKERNEL_API_KEY=kernel-from-file\n")
        monkeypatch.setenv("OPENAI_API_KEY", "already-set")
        monkeypatch.setenv("KERNEL_API_KEY", "placeholder")
        monkeypatch.delenv("KERNEL_API_KEY")
        monkeypatch.setenv("EHR_SYSTEM_HOME", str(tmp_path))

        with patch.object(ehr_config, "get_project_root", return_value=tmp_path / "missing"):
            load_env()

        assert os.environ["OPENAI_API_KEY"] == "already-set"
        assert os.environ["KERNEL_API_KEY"] == "kernel-from-file"


class TestSetupLogging:
    @pytest.fixture(autouse=True)
    def _restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_installs_redacting_handler(self):
        setup_logging()

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, RedactingFormatter)
        assert root.level == logging.INFO
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_verbose(self):
        setup_logging(verbose=True)
        assert logging.getLogger().level == logging.DEBUG
