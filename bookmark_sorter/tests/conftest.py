import importlib
import sys

import pytest


MODULE_PREFIX = "bookmark_sorter."
KEEP_LOADED = ("bookmark_sorter.models", "bookmark_sorter.tests")
MODULES = [
    "bookmark_sorter.settings",
    "bookmark_sorter.errors",
    "bookmark_sorter.database",
    "bookmark_sorter.bookmark_store",
    "bookmark_sorter.classifier_settings",
    "bookmark_sorter.extractor",
    "bookmark_sorter.parser",
    "bookmark_sorter.prompts",
    "bookmark_sorter.providers",
    "bookmark_sorter.placement",
    "bookmark_sorter.history",
    "bookmark_sorter.notifier",
    "bookmark_sorter.orchestrator",
    "bookmark_sorter.app",
]


@pytest.fixture()
def anyio_backend():
    return "asyncio"


@pytest.fixture()
def sorter_env(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    db_path = data_dir / "app.db"

    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")
    monkeypatch.setenv("INIT_RUN", "0")
    monkeypatch.setenv("LLM_PROVIDER", "default")
    monkeypatch.setenv("LANGUAGE", "en")
    monkeypatch.setenv("PROVIDER_BACKOFF_SECONDS", "0")

    for name in list(sys.modules):
        # Table classes register on the shared SQLModel metadata and must stay loaded.
        if name.startswith(MODULE_PREFIX) and not name.startswith(KEEP_LOADED):
            sys.modules.pop(name)

    modules = {}
    for module_name in MODULES:
        modules[module_name.split(".", 1)[1]] = importlib.import_module(module_name)

    modules["database"].init_db()
    modules["data_dir"] = data_dir
    return modules
