"""
Tests for the system prompt store
"""

import json

import pytest

from errors import ConfigurationError
from prompt_store import DEFAULT_PROMPTS, PromptStore


@pytest.fixture
def store_path(tmp_path):
    return str(tmp_path / "store" / "prompts.json")


def test_missing_file_loads_defaults(store_path):
    store = PromptStore(store_path)
    assert [p.name for p in store.list_prompts()] == [p.name for p in DEFAULT_PROMPTS]


def test_corrupt_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "prompts.json"
    path.write_text("{not json")

    store = PromptStore(str(path))
    assert len(store.list_prompts()) == len(DEFAULT_PROMPTS)


def test_every_mutation_rewrites_the_whole_list(store_path):
    store = PromptStore(store_path)
    created = store.create("Translator", "Translate to French.", "French translation", "Language")

    with open(store_path) as f:
        saved = json.load(f)["systemPrompts"]
    assert len(saved) == len(DEFAULT_PROMPTS) + 1
    assert saved[-1]["id"] == created.id

    store.delete("1")
    with open(store_path) as f:
        saved = json.load(f)["systemPrompts"]
    assert [p["id"] for p in saved] == ["2", "3", "4", created.id]


def test_reload_from_disk(store_path):
    store = PromptStore(store_path)
    created = store.create("Saved", "content")

    reloaded = PromptStore(store_path)
    assert reloaded.get(created.id).content == "content"


def test_other_keys_in_file_are_preserved(tmp_path):
    path = tmp_path / "prompts.json"
    path.write_text(json.dumps({"theme": "dark"}))

    store = PromptStore(str(path))
    store.create("Saved")

    data = json.loads(path.read_text())
    assert data["theme"] == "dark"
    assert "systemPrompts" in data


def test_update_refreshes_timestamp_and_keeps_id(store_path):
    store = PromptStore(store_path)
    original = store.get("2")

    updated = store.update("2", content="Review carefully.", id="changed")

    assert updated.id == "2"
    assert updated.content == "Review carefully."
    assert updated.created_at == original.created_at
    assert updated.updated_at >= original.updated_at


def test_unknown_id_raises(store_path):
    store = PromptStore(store_path)
    with pytest.raises(ConfigurationError):
        store.delete("missing")
    with pytest.raises(ConfigurationError):
        store.update("missing", name="x")


def test_toggle_favorite(store_path):
    store = PromptStore(store_path)
    assert store.toggle_favorite("1").is_favorite is False
    assert store.toggle_favorite("1").is_favorite is True


def test_categories_and_search(store_path):
    store = PromptStore(store_path)

    assert store.categories() == ["All", "General", "Programming", "Creative", "Academic"]
    assert [p.id for p in store.search("code")] == ["2"]
    assert [p.id for p in store.search("ASSISTANT", "Academic")] == ["4"]
    assert len(store.search()) == 4


def test_export_then_import_assigns_new_ids(store_path, tmp_path):
    store = PromptStore(store_path)
    export_file = str(tmp_path / "export.json")
    store.export_to_file(export_file)

    imported = store.import_from_file(export_file)

    assert len(imported) == 4
    assert len(store.list_prompts()) == 8
    assert not {p.id for p in imported} & {"1", "2", "3", "4"}


def test_import_accepts_camel_case_fields(store_path):
    store = PromptStore(store_path)
    imported = store.import_prompts({"prompts": [{"name": "X", "content": "y", "isFavorite": True}]})
    assert imported[0].is_favorite is True
    assert imported[0].category == "General"


def test_import_rejects_invalid_documents(store_path, tmp_path):
    store = PromptStore(store_path)
    with pytest.raises(ConfigurationError):
        store.import_prompts({"items": []})

    bad = tmp_path / "bad.json"
    bad.write_text("garbage")
    with pytest.raises(ConfigurationError):
        store.import_from_file(str(bad))
