import pytest

from concierge import persistence
from concierge.config import load_config
from concierge.persistence import (
    InMemoryWorkflowRepository,
    SQLiteWorkflowRepository,
    create_repository,
    get_repository,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("CONCIERGE_CONFIG", "CONCIERGE_DATABASE_URL", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(persistence, "_repository_instance", None)


def test_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config = load_config()

    assert config.database_url is None
    assert config.cache.backend == "inmemory"
    assert config.cache.ttl_seconds == 900
    assert config.engine.execute_timeout == 30.0
    assert config.engine.conflict_policy == "route"


def test_load_yaml_from_env_path(tmp_path, monkeypatch):
    path = tmp_path / "concierge.yaml"
    path.write_text(
        """
database_url: sqlite:///tmp/concierge.db
log_level: DEBUG
cache:
  backend: redis
  ttl_seconds: 60
  redis:
    host: cache.local
engine:
  execute_timeout: 5
  conflict_policy: reject
"""
    )
    monkeypatch.setenv("CONCIERGE_CONFIG", str(path))

    config = load_config()

    assert config.database_url == "sqlite:///tmp/concierge.db"
    assert config.log_level == "DEBUG"
    assert config.cache.backend == "redis"
    assert config.cache.redis.host == "cache.local"
    assert config.cache.redis.port == 6379
    assert config.engine.execute_timeout == 5.0
    assert config.engine.conflict_policy == "reject"


def test_env_database_url_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "concierge.yaml"
    path.write_text("database_url: sqlite:///from-file.db\n")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///from-env.db")

    assert load_config(str(path)).database_url == "sqlite:///from-env.db"

    monkeypatch.setenv("CONCIERGE_DATABASE_URL", "sqlite:///preferred.db")
    assert load_config(str(path)).database_url == "sqlite:///preferred.db"


def test_get_repository_selects_backend(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    repo = get_repository()
    assert isinstance(repo, InMemoryWorkflowRepository)
    assert get_repository() is repo

    sqlite_repo = get_repository(f"sqlite://{tmp_path / 'wf.db'}")
    assert isinstance(sqlite_repo, SQLiteWorkflowRepository)
    assert (tmp_path / "wf.db").exists()
    sqlite_repo.close()

    with pytest.raises(ValueError):
        get_repository("mysql://localhost/db")


def test_create_repository_does_not_touch_shared_instance():
    assert isinstance(create_repository("memory://"), InMemoryWorkflowRepository)
    assert isinstance(create_repository(None), InMemoryWorkflowRepository)
    assert persistence._repository_instance is None
    with pytest.raises(ValueError):
        create_repository("not-a-url")
