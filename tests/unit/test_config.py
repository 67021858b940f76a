"""Tests for configuration loading."""

from tidyflow import persistence
from tidyflow.config import load_config
from tidyflow.persistence import (
    InMemoryWorkflowRepository,
    SQLiteWorkflowRepository,
    get_repository,
)


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
database_url: sqlite:///tmp/ignored.db
workflow:
  default_wait_hours: 2
  stage_names: [staging, production]
effects:
  simulated_delay_seconds: 0.5
"""
    )
    monkeypatch.setenv("TIDYFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("TIDYFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    config = load_config()
    assert config.database_url == "sqlite:///tmp/ignored.db"
    assert config.workflow.default_wait_hours == 2
    assert config.workflow.stage_names == ["staging", "production"]
    assert config.effects.simulated_delay_seconds == 0.5


def test_env_overrides_config_file(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("log_level: info\n")
    monkeypatch.setenv("TIDYFLOW_CONFIG", str(config_path))
    monkeypatch.setenv("TIDYFLOW_DATABASE_URL", "sqlite://override.db")
    monkeypatch.setenv("TIDYFLOW_LOG_LEVEL", "debug")

    config = load_config()
    assert config.database_url == "sqlite://override.db"
    assert config.log_level == "DEBUG"


def test_missing_config_file_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("TIDYFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.delenv("TIDYFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    config = load_config()
    assert config.database_url is None
    assert config.workflow.stage_names == ["production"]


def test_get_repository_uses_config(tmp_path, monkeypatch):
    db_path = tmp_path / "wf.db"
    config_path = tmp_path / "config.yaml"
    config_path.write_text(f"database_url: sqlite://{db_path}\n")
    monkeypatch.setenv("TIDYFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("TIDYFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(persistence, "_repository_instance", None)

    repo = get_repository()
    assert isinstance(repo, SQLiteWorkflowRepository)
    assert repo.db_path == str(db_path)
    assert get_repository() is repo


def test_get_repository_defaults_to_memory(tmp_path, monkeypatch):
    monkeypatch.setenv("TIDYFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.delenv("TIDYFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(persistence, "_repository_instance", None)

    assert isinstance(get_repository(), InMemoryWorkflowRepository)
