"""
Tests for settings loading: defaults, YAML file and environment overrides.
"""

import pytest


@pytest.mark.unit
class TestLoadSettings:

    def test_defaults(self, monitor_home):
        from session_monitor.config import load_settings

        settings = load_settings()
        assert settings.poll_interval == 0.5
        assert settings.render_interval == 2.0
        assert settings.assess_every == 10
        assert settings.assessor_backend == "api"
        assert settings.assessor_model == "claude-haiku-4-5-20251001"
        assert settings.assessor_timeout == 15.0

    def test_yaml_overrides_defaults(self, monitor_home):
        from session_monitor.config import load_settings

        monitor_home.mkdir(parents=True)
        (monitor_home / "config.yaml").write_text(
            "poll_interval: 1.5\nassess_every: 5\nassessor_backend: cli\n"
        )
        settings = load_settings()
        assert settings.poll_interval == 1.5
        assert settings.assess_every == 5
        assert settings.assessor_backend == "cli"

    def test_env_overrides_yaml(self, monitor_home, monkeypatch):
        from session_monitor.config import load_settings

        monitor_home.mkdir(parents=True)
        (monitor_home / "config.yaml").write_text("assess_every: 5\n")
        monkeypatch.setenv("SESSION_MONITOR_ASSESS_EVERY", "20")
        monkeypatch.setenv("SESSION_MONITOR_ASSESSOR", "none")
        monkeypatch.setenv("SESSION_MONITOR_ASSESSOR_TIMEOUT", "2.5")

        settings = load_settings()
        assert settings.assess_every == 20
        assert settings.assessor_backend == "none"
        assert settings.assessor_timeout == 2.5

    def test_invalid_values_fall_back(self, monitor_home, monkeypatch):
        from session_monitor.config import load_settings

        monkeypatch.setenv("SESSION_MONITOR_POLL_INTERVAL", "fast")
        monkeypatch.setenv("SESSION_MONITOR_ASSESSOR", "gpt")
        monkeypatch.setenv("SESSION_MONITOR_ASSESS_EVERY", "0")

        settings = load_settings()
        assert settings.poll_interval == 0.5
        assert settings.assessor_backend == "api"
        assert settings.assess_every == 10

    def test_broken_yaml_ignored(self, monitor_home):
        from session_monitor.config import load_settings

        monitor_home.mkdir(parents=True)
        (monitor_home / "config.yaml").write_text("poll_interval: [unclosed\n")
        assert load_settings().poll_interval == 0.5

    def test_non_mapping_yaml_ignored(self, tmp_path):
        from session_monitor.config import load_yaml

        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        assert load_yaml(path) == {}

    def test_to_dict(self):
        from session_monitor.config import MonitorSettings

        data = MonitorSettings().to_dict()
        assert data["assess_every"] == 10
        assert set(data) == {
            "poll_interval", "render_interval", "assess_every",
            "assessor_backend", "assessor_model", "assessor_timeout",
        }

    def test_ensure_directories(self, monitor_home):
        from session_monitor.config import ensure_directories

        ensure_directories()
        assert (monitor_home / "logs").is_dir()
