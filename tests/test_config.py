import json

import pytest
from pydantic import ValidationError

from nimproxy.config import DEFAULT_MODEL_MAPPING, Settings, _load_model_config_file
from nimproxy.model_resolver import ModelResolver
from nimproxy.schemas import FallbackRule


@pytest.fixture(autouse=True)
def clean_model_env(monkeypatch, tmp_path):
    for name in ("MODEL_MAPPING", "MODEL_FALLBACKS", "DEFAULT_FALLBACK_MODEL", "LOG_LEVEL", "THINKING_ENCODING"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("MODEL_CONFIG_FILE", str(tmp_path / "missing.json"))
    _load_model_config_file.cache_clear()
    yield
    _load_model_config_file.cache_clear()


def test_builtin_defaults():
    current = Settings()

    assert current.MODEL_MAPPING == DEFAULT_MODEL_MAPPING
    assert current.DEFAULT_FALLBACK_MODEL == "meta/llama-3.1-8b-instruct"
    assert [rule.model for rule in current.MODEL_FALLBACKS] == [
        "meta/llama-3.1-405b-instruct",
        "meta/llama-3.1-70b-instruct",
    ]
    assert current.DEFAULT_TEMPERATURE == 0.6
    assert current.DEFAULT_MAX_TOKENS == 9024


def test_model_tables_from_env(monkeypatch):
    monkeypatch.setenv("MODEL_MAPPING", json.dumps({"my-alias": "vendor/model"}))
    monkeypatch.setenv("MODEL_FALLBACKS", json.dumps([{"keywords": ["mini"], "model": "vendor/small"}]))
    monkeypatch.setenv("DEFAULT_FALLBACK_MODEL", "vendor/default")

    resolver = ModelResolver.from_settings(Settings())

    assert resolver.aliases() == ["my-alias"]
    assert resolver.resolve("my-alias") == "vendor/model"
    assert resolver.resolve("gpt-4o-mini") == "vendor/small"
    assert resolver.resolve("gpt-4o") == "vendor/default"


def test_model_tables_from_file(monkeypatch, tmp_path):
    models_file = tmp_path / "models.json"
    models_file.write_text(
        json.dumps({
            "mapping": {"gpt-4o": "deepseek-ai/deepseek-v3.1"},
            "fallbacks": [],
            "default": "meta/llama-3.1-8b-instruct",
        }),
        encoding="utf-8",
    )
    monkeypatch.setenv("MODEL_CONFIG_FILE", str(models_file))
    _load_model_config_file.cache_clear()

    current = Settings()

    assert current.MODEL_MAPPING == {"gpt-4o": "deepseek-ai/deepseek-v3.1"}
    assert current.MODEL_FALLBACKS == []
    assert ModelResolver.from_settings(current).resolve("claude-3-opus") == "meta/llama-3.1-8b-instruct"


def test_empty_mapping_in_file_replaces_builtins(monkeypatch, tmp_path):
    models_file = tmp_path / "models.json"
    models_file.write_text(json.dumps({"mapping": {}, "fallbacks": [], "default": "d"}), encoding="utf-8")
    monkeypatch.setenv("MODEL_CONFIG_FILE", str(models_file))
    _load_model_config_file.cache_clear()

    current = Settings()

    assert current.MODEL_MAPPING == {}
    assert current.DEFAULT_FALLBACK_MODEL == "d"
    assert ModelResolver.from_settings(current).aliases() == []


def test_broken_model_file_falls_back_to_defaults(monkeypatch, tmp_path):
    models_file = tmp_path / "models.json"
    models_file.write_text("{not json", encoding="utf-8")
    monkeypatch.setenv("MODEL_CONFIG_FILE", str(models_file))
    _load_model_config_file.cache_clear()

    assert Settings().MODEL_MAPPING == DEFAULT_MODEL_MAPPING


@pytest.mark.parametrize("raw,expected", [("DEBUG", "debug"), ("false", "false"), ("verbose", "info")])
def test_log_level_normalized(raw, expected):
    assert Settings(LOG_LEVEL=raw).LOG_LEVEL == expected


def test_unknown_thinking_encoding_falls_back():
    assert Settings(THINKING_ENCODING="extra_body").THINKING_ENCODING == "chat_template_kwargs"
    assert Settings(THINKING_ENCODING="system_prompt").THINKING_ENCODING == "system_prompt"


def test_settings_are_frozen():
    current = Settings()
    with pytest.raises(ValidationError):
        current.NIM_API_KEY = "changed"


def test_fallback_rule_validation():
    rule = FallbackRule.model_validate({"keywords": ["a", "b"], "model": "m"})
    assert rule.keywords == ["a", "b"]


def test_package_exports_resolve():
    import nimproxy

    for name in nimproxy.__all__:
        assert hasattr(nimproxy, name), name
    assert "get_logger" not in nimproxy.__all__
