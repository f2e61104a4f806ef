from foundryquest.catalog import LevelCatalog
from foundryquest.progress import ProgressStore


def _catalog_and_store() -> tuple[LevelCatalog, ProgressStore]:
    catalog = LevelCatalog.from_bundle()
    return catalog, ProgressStore(":memory:", catalog.level_ids)


def test_catalog_lookup() -> None:
    catalog, _ = _catalog_and_store()
    assert len(catalog) == 5
    assert catalog.level_ids == [1, 2, 3, 4, 5]
    assert catalog.max_level == 5
    level = catalog.get_level(3)
    assert level is not None
    assert level.title == "Embeddings Explorer"
    assert catalog.get_level(99) is None


def test_only_first_level_unlocked_initially() -> None:
    catalog, store = _catalog_and_store()
    progress = store.progress
    assert catalog.is_level_unlocked(1, progress) is True
    assert [catalog.is_level_unlocked(level_id, progress) for level_id in range(2, 6)] == [False] * 4


def test_completion_unlocks_next_level_only() -> None:
    catalog, store = _catalog_and_store()
    store.start_level(1)
    store.complete_level(1, 100, "prompt_apprentice")
    progress = store.progress
    assert catalog.is_level_unlocked(2, progress) is True
    assert catalog.is_level_unlocked(3, progress) is False


def test_unknown_level_is_locked() -> None:
    catalog, store = _catalog_and_store()
    assert catalog.is_level_unlocked(0, store.progress) is False
    assert catalog.is_level_unlocked(6, store.progress) is False


def test_level_menu_rows() -> None:
    catalog, store = _catalog_and_store()
    store.complete_level(1, 100, "prompt_apprentice")
    rows = catalog.level_menu(store.progress)
    assert [row.id for row in rows] == [1, 2, 3, 4, 5]
    assert rows[0].completed is True
    assert rows[1].unlocked is True
    assert rows[1].completed is False
    assert rows[2].unlocked is False
