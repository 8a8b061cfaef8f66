"""Tests for ConfigLoader, logging setup and the service factories built on them."""

import logging

import pytest

from cognilab.persistence import InMemoryLabStore, HttpLabStore
from cognilab.service import build_catalog, build_store
from cognilab.utils import ConfigLoader, setup_logging, logging_config

CONFIG_YAML = """
app_settings:
  wiring:
    default_color: "#ff8800"
  storage:
    backend: memory
catalog:
  equipment:
    - id: resistor
      name: Resistor
      type: passive
      defaultConfiguration: {resistance: 330}
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")
    return path


def test_dotted_lookup(config_file, tmp_path):
    loader = ConfigLoader(yaml_config_path=str(config_file), dotenv_path=str(tmp_path / "missing.env"))
    assert loader.get_config("app_settings.wiring.default_color") == "#ff8800"
    assert loader.get_config("app_settings.wiring.missing", "x") == "x"
    assert loader.get_config("app_settings.wiring.default_color.deeper", 1) == 1


def test_singleton_until_reset(config_file, tmp_path):
    first = ConfigLoader(yaml_config_path=str(config_file))
    assert ConfigLoader(yaml_config_path=str(tmp_path / "other.yaml")) is first
    ConfigLoader.reset()
    assert ConfigLoader(yaml_config_path=str(tmp_path / "other.yaml")) is not first


def test_missing_or_invalid_yaml_gives_empty_config(tmp_path):
    loader = ConfigLoader(yaml_config_path=str(tmp_path / "absent.yaml"))
    assert loader.config == {}

    bad = tmp_path / "bad.yaml"
    bad.write_text("- just\n- a list\n", encoding="utf-8")
    loader = ConfigLoader(yaml_config_path=str(bad), reload_config=True)
    assert loader.config == {}


def test_dotenv_file_is_loaded(tmp_path, monkeypatch):
    monkeypatch.delenv("COGNILAB_STORAGE_TOKEN", raising=False)
    env = tmp_path / ".env"
    env.write_text("COGNILAB_STORAGE_TOKEN=abc123\n", encoding="utf-8")
    loader = ConfigLoader(yaml_config_path=str(tmp_path / "absent.yaml"), dotenv_path=str(env))
    assert loader.get_env_var("COGNILAB_STORAGE_TOKEN") == "abc123"
    assert loader.get_env_var("COGNILAB_UNSET_VARIABLE", "fallback") == "fallback"
    monkeypatch.delenv("COGNILAB_STORAGE_TOKEN", raising=False)


def test_build_catalog_and_memory_store(config_file, monkeypatch):
    monkeypatch.delenv("COGNILAB_STORAGE_URL", raising=False)
    loader = ConfigLoader(yaml_config_path=str(config_file))
    catalog = build_catalog(loader)
    assert catalog.get("resistor").default_configuration == {"resistance": 330}
    assert isinstance(build_store(loader), InMemoryLabStore)


@pytest.mark.asyncio
async def test_storage_url_env_selects_http_store(config_file, monkeypatch):
    monkeypatch.setenv("COGNILAB_STORAGE_URL", "https://storage.test/api")
    loader = ConfigLoader(yaml_config_path=str(config_file))
    store = build_store(loader)
    assert isinstance(store, HttpLabStore)
    assert store.base_url == "https://storage.test/api"
    await store.aclose()


def test_http_backend_without_url_is_rejected(tmp_path, monkeypatch):
    monkeypatch.delenv("COGNILAB_STORAGE_URL", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text("app_settings:\n  storage:\n    backend: http\n", encoding="utf-8")
    loader = ConfigLoader(yaml_config_path=str(path))
    with pytest.raises(ValueError):
        build_store(loader)


def test_setup_logging_writes_file(tmp_path):
    app_logger = setup_logging(console_log_level=logging.WARNING, file_log_level=logging.DEBUG,
                               log_dir_override=str(tmp_path / "logs"))
    assert app_logger.name == "cognilab"
    assert list((tmp_path / "logs").glob("cognilab_*.log"))
    assert logging.getLogger("httpx").level == logging.WARNING
    # calling again replaces handlers instead of stacking them
    setup_logging(console_log_level=logging.WARNING, enable_file_logging=False)
    assert logging_config.file_handler is None
    ours = [h for h in logging.getLogger().handlers if h is logging_config.console_handler]
    assert len(ours) == 1


def test_typed_lookup_falls_back_on_bad_values(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("app_settings:\n  commands:\n    max_retries: '2'\n    retry_delay_seconds: soon\n", encoding="utf-8")
    loader = ConfigLoader(yaml_config_path=str(path))
    assert loader.get_typed("app_settings.commands.max_retries", int, 0) == 2
    assert loader.get_typed("app_settings.commands.retry_delay_seconds", float, 1.0) == 1.0
    assert loader.get_typed("app_settings.commands.missing", int, 7) == 7
