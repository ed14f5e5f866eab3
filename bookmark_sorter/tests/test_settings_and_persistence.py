import pytest


@pytest.mark.parametrize(
    "allow_new_folders, level, expected",
    [
        ("off", "strong", "off"),
        ("strong", None, "strong"),
        ("Medium", None, "medium"),
        ("sometimes", None, "weak"),
        (True, None, "medium"),
        (True, "strong", "medium"),
        (False, "strong", "off"),
        (None, "strong", "strong"),
        (None, "unknown", "weak"),
        (None, None, "weak"),
    ],
)
def test_folder_policy_migration(sorter_env, allow_new_folders, level, expected):
    classifier_settings = sorter_env["classifier_settings"]

    policy = classifier_settings.normalize_folder_policy(allow_new_folders, level)

    assert policy == classifier_settings.FolderPolicy(expected)


def test_legacy_boolean_setting_is_normalized_on_load(sorter_env):
    database = sorter_env["database"]
    classifier_settings = sorter_env["classifier_settings"]

    database.set_classifier_settings_entry({"allow_new_folders": False, "enable_smart_rename": True})
    preferences = classifier_settings.load_preferences()

    assert preferences.folder_policy == classifier_settings.FolderPolicy.OFF
    assert preferences.rename_enabled is True


def test_defaults_come_from_environment(sorter_env):
    classifier_settings = sorter_env["classifier_settings"]

    config = classifier_settings.load_provider_config()
    preferences = classifier_settings.load_preferences()

    assert config.provider_id == "default"
    assert config.api_key is None
    assert preferences.language == "en"
    assert preferences.folder_policy == classifier_settings.FolderPolicy.WEAK


def _persist(classifier_settings, **overrides):
    values = {
        "llm_provider": "chatgpt",
        "model": "gpt-4o-mini",
        "base_url": "https://gateway.local/v1",
        "ollama_host": None,
        "folder_policy": "strong",
        "enable_smart_rename": True,
        "language": "en",
        "disabled_domains": ["Example.com", " intranet.local ", "example.com"],
        "api_key": None,
        "clear_api_key": False,
    }
    values.update(overrides)
    return classifier_settings.persist_classifier_settings(**values)


def test_persisted_settings_round_trip(sorter_env):
    classifier_settings = sorter_env["classifier_settings"]

    config, preferences = _persist(classifier_settings, api_key=" sk-secret ")

    assert config.provider_id == "chatgpt"
    assert config.api_key == "sk-secret"
    assert config.endpoint_override == "https://gateway.local/v1"
    assert preferences.folder_policy == classifier_settings.FolderPolicy.STRONG
    assert preferences.disabled_domains == ("example.com", "intranet.local")
    assert "api_key" not in config.sanitized()
    assert config.sanitized()["has_api_key"] is True


def test_api_key_is_kept_unless_cleared(sorter_env):
    classifier_settings = sorter_env["classifier_settings"]

    _persist(classifier_settings, api_key="sk-secret")
    config, _ = _persist(classifier_settings, model="gpt-4o")
    assert config.api_key == "sk-secret"
    assert config.model == "gpt-4o"

    config, _ = _persist(classifier_settings, clear_api_key=True)
    assert config.api_key is None


def test_off_policy_is_stored_as_legacy_toggle(sorter_env):
    database = sorter_env["database"]
    classifier_settings = sorter_env["classifier_settings"]

    _, preferences = _persist(classifier_settings, folder_policy="off")

    assert preferences.folder_policy == classifier_settings.FolderPolicy.OFF
    assert database.get_classifier_settings_entry()["allow_new_folders"] == "off"


def test_ollama_host_becomes_endpoint_override(sorter_env):
    classifier_settings = sorter_env["classifier_settings"]

    config, _ = _persist(classifier_settings, llm_provider="ollama", ollama_host="http://gpu-box:11434")

    assert config.provider_id == "ollama"
    assert config.endpoint_override == "http://gpu-box:11434"


@pytest.mark.parametrize(
    "overrides",
    [
        {"llm_provider": "doubao", "model": ""},
        {"llm_provider": "mystery"},
        {"folder_policy": "sometimes"},
        {"language": "fr"},
    ],
)
def test_invalid_settings_are_rejected(sorter_env, overrides):
    classifier_settings = sorter_env["classifier_settings"]

    with pytest.raises(ValueError):
        _persist(classifier_settings, **overrides)


def test_corrupt_persisted_settings_are_ignored(sorter_env):
    database = sorter_env["database"]
    classifier_settings = sorter_env["classifier_settings"]

    database._set_config_value("CLASSIFIER_SETTINGS", "{not json")

    assert database.get_classifier_settings_entry() == {}
    assert classifier_settings.load_provider_config().provider_id == "default"


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://example.com/page", True),
        ("https://news.example.com/page", True),
        ("https://notexample.com/page", False),
        ("https://intranet.local:8443/x", True),
        ("not a url", False),
    ],
)
def test_disabled_domains(sorter_env, url, expected):
    classifier_settings = sorter_env["classifier_settings"]

    assert classifier_settings.is_domain_disabled(url, ("example.com", "intranet.local")) is expected


def test_loaded_provider_is_a_provider_id(sorter_env):
    classifier_settings = sorter_env["classifier_settings"]
    _persist(classifier_settings, llm_provider="gemini", api_key="g-key")

    config = classifier_settings.load_provider_config()

    assert config.provider_id is classifier_settings.ProviderId.GEMINI


def test_unknown_configured_provider_is_a_configuration_error(sorter_env, monkeypatch):
    classifier_settings = sorter_env["classifier_settings"]
    errors = sorter_env["errors"]
    monkeypatch.setattr(sorter_env["settings"].S, "LLM_PROVIDER", "mystery")

    with pytest.raises(errors.ConfigurationError):
        classifier_settings.load_provider_config()


def test_saving_a_policy_replaces_a_legacy_toggle(sorter_env):
    database = sorter_env["database"]
    classifier_settings = sorter_env["classifier_settings"]
    database.set_classifier_settings_entry({"allow_new_folders": True, "folder_creation_level": "strong"})

    assert classifier_settings.load_preferences().folder_policy is classifier_settings.FolderPolicy.MEDIUM

    _, preferences = _persist(classifier_settings, folder_policy="strong")

    assert preferences.folder_policy is classifier_settings.FolderPolicy.STRONG
    assert "allow_new_folders" not in database.get_classifier_settings_entry()
