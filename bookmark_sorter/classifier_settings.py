from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Sequence, Tuple
from urllib.parse import urlparse

from bookmark_sorter.database import get_classifier_settings_entry, set_classifier_settings_entry
from bookmark_sorter.errors import ConfigurationError
from bookmark_sorter.settings import S


class ProviderId(str, Enum):
    DEFAULT = "default"
    DEEPSEEK = "deepseek"
    CHATGPT = "chatgpt"
    GEMINI = "gemini"
    OLLAMA = "ollama"
    DOUBAO = "doubao"


class FolderPolicy(str, Enum):
    OFF = "off"
    WEAK = "weak"
    MEDIUM = "medium"
    STRONG = "strong"


SUPPORTED_LANGUAGES = ("zh_CN", "en")


@dataclass(frozen=True)
class ProviderConfig:
    provider_id: ProviderId
    api_key: str | None = None
    model: str | None = None
    endpoint_override: str | None = None

    def sanitized(self) -> Dict[str, Any]:
        return {
            "provider_id": self.provider_id,
            "model": self.model,
            "endpoint_override": self.endpoint_override,
            "has_api_key": bool(self.api_key),
        }


@dataclass(frozen=True)
class ClassifierPreferences:
    folder_policy: FolderPolicy = FolderPolicy.WEAK
    rename_enabled: bool = False
    language: str = "zh_CN"
    disabled_domains: Tuple[str, ...] = field(default_factory=tuple)


def _base_defaults() -> Dict[str, Any]:
    return {
        "llm_provider": S.LLM_PROVIDER or "default",
        "api_key": S.LLM_API_KEY or "",
        "model": S.LLM_MODEL or "",
        "base_url": S.LLM_BASE_URL or "",
        "ollama_host": S.OLLAMA_HOST or "",
        "folder_creation_level": S.FOLDER_POLICY or "weak",
        "enable_smart_rename": bool(S.SMART_RENAME),
        "language": S.LANGUAGE or "zh_CN",
        "disabled_domains": [],
    }


def _stored_values() -> Dict[str, Any]:
    stored = _base_defaults()
    overrides = get_classifier_settings_entry()
    if overrides:
        stored.update({key: value for key, value in overrides.items() if value is not None})
    return stored


def _optional_text(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None


def normalize_folder_policy(allow_new_folders: Any, level: Any = None) -> FolderPolicy:
    """Map every stored shape of the folder creation setting onto ``FolderPolicy``.

    Older settings stored ``allow_new_folders`` either as a boolean toggle or as
    the level string itself; newer ones keep the toggle and the level apart.
    A stored toggle wins over the level. Saving settings only writes the toggle
    when the policy is off, so a saved level is read back unchanged.
    """

    if isinstance(allow_new_folders, str):
        value = allow_new_folders.strip().lower()
        if value == FolderPolicy.OFF.value:
            return FolderPolicy.OFF
        try:
            return FolderPolicy(value)
        except ValueError:
            return FolderPolicy.WEAK
    if isinstance(allow_new_folders, bool):
        return FolderPolicy.MEDIUM if allow_new_folders else FolderPolicy.OFF
    if isinstance(level, FolderPolicy):
        return level
    if isinstance(level, str) and level.strip():
        try:
            return FolderPolicy(level.strip().lower())
        except ValueError:
            return FolderPolicy.WEAK
    return FolderPolicy.WEAK


def _normalize_provider(value: Any) -> str:
    raw = str(value or "").strip().lower()
    return raw or ProviderId.DEFAULT.value


def _normalize_language(value: Any) -> str:
    raw = str(value or "").strip()
    if raw not in SUPPORTED_LANGUAGES:
        raise ValueError(f"Unsupported language: {raw or '<empty>'}")
    return raw


def _normalize_domains(values: Any) -> List[str]:
    if values is None:
        return []
    if isinstance(values, str):
        values = values.replace(",", "\n").splitlines()
    if not isinstance(values, (list, tuple)):
        raise ValueError("disabled domains must be a list")
    normalized: List[str] = []
    for value in values:
        domain = str(value or "").strip().lower().lstrip(".")
        if domain and domain not in normalized:
            normalized.append(domain)
    return normalized


def load_provider_config() -> ProviderConfig:
    stored = _stored_values()
    raw_provider = _normalize_provider(stored.get("llm_provider"))
    try:
        provider_id = ProviderId(raw_provider)
    except ValueError:
        raise ConfigurationError(f"No valid LLM provider configured: {raw_provider}") from None
    if provider_id == ProviderId.OLLAMA:
        endpoint = _optional_text(stored.get("ollama_host"))
    elif provider_id == ProviderId.CHATGPT:
        endpoint = _optional_text(stored.get("base_url"))
    else:
        endpoint = None
    return ProviderConfig(
        provider_id=provider_id,
        api_key=_optional_text(stored.get("api_key")),
        model=_optional_text(stored.get("model")),
        endpoint_override=endpoint,
    )


def load_preferences() -> ClassifierPreferences:
    stored = _stored_values()
    try:
        language = _normalize_language(stored.get("language"))
    except ValueError:
        language = "zh_CN"
    try:
        domains = _normalize_domains(stored.get("disabled_domains"))
    except ValueError:
        domains = []
    return ClassifierPreferences(
        folder_policy=normalize_folder_policy(
            stored.get("allow_new_folders"), stored.get("folder_creation_level")
        ),
        rename_enabled=bool(stored.get("enable_smart_rename", False)),
        language=language,
        disabled_domains=tuple(domains),
    )


def persist_classifier_settings(
    *,
    llm_provider: str,
    model: str | None,
    base_url: str | None,
    ollama_host: str | None,
    folder_policy: str,
    enable_smart_rename: bool,
    language: str,
    disabled_domains: Sequence[str] | str | None,
    api_key: str | None,
    clear_api_key: bool,
) -> Tuple[ProviderConfig, ClassifierPreferences]:
    provider_id = _normalize_provider(llm_provider)
    if provider_id not in {item.value for item in ProviderId}:
        raise ValueError(f"Unknown provider: {provider_id}")
    try:
        policy = FolderPolicy(str(folder_policy or "").strip().lower())
    except ValueError:
        raise ValueError(f"Unknown folder policy: {folder_policy}") from None
    if provider_id == ProviderId.DOUBAO.value and not _optional_text(model):
        raise ValueError("The doubao provider requires a model (endpoint id).")

    current = get_classifier_settings_entry()
    payload: Dict[str, Any] = {
        "llm_provider": provider_id,
        "model": _optional_text(model) or "",
        "base_url": _optional_text(base_url) or "",
        "ollama_host": _optional_text(ollama_host) or "",
        "folder_creation_level": policy.value,
        "enable_smart_rename": bool(enable_smart_rename),
        "language": _normalize_language(language),
        "disabled_domains": _normalize_domains(disabled_domains),
    }
    if clear_api_key:
        payload["api_key"] = ""
    elif api_key is not None:
        payload["api_key"] = api_key.strip()
    elif current and "api_key" in current:
        payload["api_key"] = current.get("api_key", "")
    if policy == FolderPolicy.OFF:
        payload["allow_new_folders"] = "off"
    set_classifier_settings_entry(payload)
    return load_provider_config(), load_preferences()


def is_domain_disabled(url: str, domains: Sequence[str]) -> bool:
    host = (urlparse(url).hostname or "").lower()
    if not host:
        return False
    for domain in domains:
        if host == domain or host.endswith(f".{domain}"):
            return True
    return False
