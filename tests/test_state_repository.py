"""State repository and catalog model tests."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from abcatalog.state import (
    DEFAULT_STATE_DIRNAME,
    AcquisitionStatus,
    Category,
    CategoryStore,
    InMemoryCategoryStore,
    Item,
    MissingStateError,
    NotFoundError,
    PublicationStatus,
    StateError,
    StateRepository,
    ValidationError,
    normalize_letter,
)
from abcatalog.state.models import MediaRecord, MediaStatus, QualityBreakdown, QualityScore


def _category() -> Category:
    """Return a sample category holding one item under ``A``.

    Returns:
        Category: Category with an ``Apple`` item.
    """
    category = Category(id="fruits", name="Fruits")
    category.bucket("A").append(Item(id="apple", name="Apple", letter="A"))
    return category


def test_initialize_creates_expected_structure(tmp_path: Path) -> None:
    repo = StateRepository(tmp_path)

    directory = repo.initialize()

    assert directory == tmp_path / DEFAULT_STATE_DIRNAME / "categories"
    assert directory.is_dir()
    assert repo.audit_log_path.exists()


def test_save_and_get_round_trip(tmp_path: Path) -> None:
    repo = StateRepository(tmp_path)
    category = _category()

    repo.save(category)
    loaded = repo.get("fruits")

    assert loaded.id == "fruits"
    assert len(loaded.letters) == 26
    assert loaded.bucket("A")[0].name == "Apple"
    assert loaded.bucket("A")[0].acquisition_status == AcquisitionStatus.PENDING
    assert loaded.created_at.tzinfo is not None
    assert not list(repo.state_dir.glob("categories/*.tmp"))


def test_get_missing_category_raises(tmp_path: Path) -> None:
    repo = StateRepository(tmp_path)

    with pytest.raises(MissingStateError):
        repo.get("nothing")


def test_get_invalid_document_raises_state_error(tmp_path: Path) -> None:
    repo = StateRepository(tmp_path)
    directory = repo.initialize()
    (directory / "broken.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(StateError):
        repo.get("broken")


def test_list_returns_categories_sorted_by_id(tmp_path: Path) -> None:
    repo = StateRepository(tmp_path)
    repo.save(Category(id="zoo", name="Zoo"))
    repo.save(Category(id="animals", name="Animals"))

    assert [category.id for category in repo.list()] == ["animals", "zoo"]
    assert repo.exists("zoo")
    assert not repo.exists("plants")


def test_list_skips_unreadable_documents(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    repo = StateRepository(tmp_path)
    repo.save(Category(id="animals", name="Animals"))
    (repo.initialize() / "broken.json").write_text("{not json", encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="abcatalog.state"):
        categories = repo.list()

    assert [category.id for category in categories] == ["animals"]
    assert "broken" in caplog.text


def test_malformed_item_values_are_repaired_on_load(tmp_path: Path) -> None:
    repo = StateRepository(tmp_path)
    directory = repo.initialize()
    document = {
        "id": "legacy",
        "name": "Legacy",
        "letters": {
            "a": [
                {
                    "id": "ant",
                    "name": "Ant",
                    "letter": "A",
                    "difficulty": 0,
                    "search_attempts": -2,
                    "target_count": "lots",
                },
                {"id": "axe", "name": None, "difficulty": 9, "tags": "tools"},
            ]
        },
    }
    (directory / "legacy.json").write_text(json.dumps(document), encoding="utf-8")

    ant, axe = repo.get("legacy").bucket("A")

    assert (ant.difficulty, ant.search_attempts, ant.target_count) == (1, 0, None)
    assert set(ant.load_repairs) == {"difficulty", "search_attempts", "target_count"}
    assert (axe.name, axe.letter, axe.difficulty, axe.tags) == ("", "A", 5, [])
    assert set(axe.load_repairs) == {"name", "letter", "difficulty", "tags"}
    assert "load_repairs" not in ant.model_dump()


def test_well_formed_items_carry_no_repairs() -> None:
    item = Item(id="ant", name="Ant", letter="A", difficulty=3, search_attempts=2, target_count=4)

    assert item.load_repairs == {}


def test_repository_and_memory_store_satisfy_protocol(tmp_path: Path) -> None:
    assert isinstance(StateRepository(tmp_path), CategoryStore)
    assert isinstance(InMemoryCategoryStore(), CategoryStore)


def test_memory_store_hands_out_copies() -> None:
    store = InMemoryCategoryStore()
    store.save(_category())

    loaded = store.get("fruits")
    loaded.bucket("A").clear()

    assert len(store.get("fruits").bucket("A")) == 1
    with pytest.raises(NotFoundError):
        store.get("missing")


def test_legacy_letter_mapping_and_status_aliases_load(tmp_path: Path) -> None:
    repo = StateRepository(tmp_path)
    directory = repo.initialize()
    legacy = {
        "id": "legacy",
        "name": "Legacy",
        "letters": {
            "b": [
                {"id": "ball", "name": "Ball", "letter": "B", "acquisition_status": "completed"},
                {"id": "bat", "name": "Bat", "letter": "B", "acquisition_status": "mystery"},
            ]
        },
    }
    (directory / "legacy.json").write_text(json.dumps(legacy), encoding="utf-8")

    category = repo.get("legacy")

    ball, bat = category.bucket("B")
    assert ball.acquisition_status == AcquisitionStatus.COMPLETE
    assert bat.acquisition_status is None
    assert bat.publication_status == PublicationStatus.DRAFT


def test_category_requires_exactly_26_slots() -> None:
    with pytest.raises(ValueError):
        Category(id="short", name="Short", letters=[[] for _ in range(25)])


def test_find_item_reports_letter_and_missing_items() -> None:
    category = _category()

    letter, item = category.find_item("apple")

    assert letter == "A"
    assert item.name == "Apple"
    with pytest.raises(NotFoundError):
        category.find_item("pear")


@pytest.mark.parametrize("value", ["", "AB", "1", "é", None])
def test_normalize_letter_rejects_malformed_input(value: object) -> None:
    with pytest.raises(ValidationError):
        normalize_letter(value)


def test_normalize_letter_uppercases() -> None:
    assert normalize_letter(" q ") == "Q"


def test_quality_breakdown_uses_weighted_overall() -> None:
    breakdown = QualityBreakdown(technical=8, relevance=10, aesthetic=6, usability=4)

    score = QualityScore.from_breakdown(breakdown)

    # 8*.25 + 10*.35 + 6*.25 + 4*.15 = 7.6
    assert score.overall == pytest.approx(7.6)


def test_media_status_aliases_and_unknown_values() -> None:
    review = MediaRecord(source_id="x", file_path="x.jpg", status="manual-review")
    unknown = MediaRecord(source_id="y", file_path="y.jpg", status="bogus")

    assert review.status == MediaStatus.MANUAL_REVIEW
    assert unknown.status == MediaStatus.PENDING
