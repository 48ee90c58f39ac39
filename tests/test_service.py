"""Catalog service integration tests."""

from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from abcatalog.aggregates import recompute
from abcatalog.config import CatalogConfig
from abcatalog.lifecycle import PUBLISH_PENDING_MESSAGE, InMemoryAuditSink, JsonlAuditSink
from abcatalog.quality import GateDecision
from abcatalog.service import CatalogService
from abcatalog.state import (
    AcquisitionStatus,
    CategoryDraft,
    InMemoryCategoryStore,
    ItemDraft,
    MediaDraft,
    MediaStatus,
    NotFoundError,
    PublicationStatus,
    QualityScore,
    StateRepository,
    ValidationError,
)


def _service(config: CatalogConfig | None = None) -> tuple[CatalogService, InMemoryAuditSink]:
    sink = InMemoryAuditSink()
    service = CatalogService(InMemoryCategoryStore(), sink, config)
    service.create_category(CategoryDraft(id="fruits", name="Fruits"))
    return service, sink


def _candidate(service: CatalogService, item_id: str, media_id: str, score: float | None) -> None:
    service.add_candidate_media(
        "fruits",
        item_id,
        MediaDraft(
            id=media_id,
            source_id=media_id,
            file_path=f"media/{media_id}.jpg",
            quality_score=QualityScore(overall=score) if score is not None else None,
        ),
    )


def _approve(service: CatalogService, item_id: str, count: int, start: int = 0) -> None:
    for index in range(start, start + count):
        media_id = f"{item_id}-{index}"
        _candidate(service, item_id, media_id, 9.0)
        service.set_media_status("fruits", item_id, media_id, MediaStatus.APPROVED, actor="ops")


def _assert_invariants(service: CatalogService) -> None:
    for category in service.list_categories():
        target = category.strategy.target_images_per_item
        for _, item in category.iter_items(include_archived=True):
            if item.acquisition_status == AcquisitionStatus.COMPLETE:
                assert item.approved_count >= (item.target_count or target)
            if item.publication_status == PublicationStatus.PUBLISHED:
                assert item.acquisition_status != AcquisitionStatus.PENDING
            primaries = [record for record in item.media if record.is_primary]
            assert len(primaries) <= 1
            assert all(record.status == MediaStatus.APPROVED for record in primaries)
        assert category.aggregate == recompute(category)


def test_create_category_populates_26_slots_and_rejects_duplicates() -> None:
    service, sink = _service()

    category = service.get_category("fruits")

    assert len(category.letters) == 26
    assert category.strategy.target_images_per_item == 3
    assert sink.events[0].resource_type == "category"
    with pytest.raises(ValidationError):
        service.create_category(CategoryDraft(id="fruits", name="Again"))


def test_new_categories_use_configured_defaults() -> None:
    config = CatalogConfig.model_validate(
        {"lifecycle": {"default_target_count": 2}, "quality": {"min_quality_threshold": 6.0}}
    )
    service, _ = _service(config)

    strategy = service.get_category("fruits").strategy

    assert strategy.target_images_per_item == 2
    assert strategy.min_quality_threshold == 6.0


def test_create_item_validates_letter_and_name() -> None:
    service, _ = _service()

    item = service.create_item("fruits", "a", ItemDraft(id="apple", name="Apple"))

    assert item.letter == "A"
    assert service.get_category("fruits").bucket("A")[0].id == "apple"
    with pytest.raises(ValidationError):
        service.create_item("fruits", "AB", ItemDraft(name="Apple"))
    with pytest.raises(ValidationError):
        service.create_item("fruits", "B", ItemDraft(name="Apple"))
    with pytest.raises(ValidationError):
        service.create_item("fruits", "A", ItemDraft(id="apple", name="Apricot"))
    with pytest.raises(NotFoundError):
        service.create_item("vegetables", "A", ItemDraft(name="Artichoke"))


def test_scenario_a_cold_start_backlog_priority() -> None:
    service, _ = _service()
    service.create_item("fruits", "A", ItemDraft(id="apple", name="Apple", difficulty=1))

    (entry,) = service.rank_backlog("fruits")

    assert entry.item_id == "apple"
    assert entry.score == 170


def test_removing_the_only_rejected_candidate_restores_cold_start_priority() -> None:
    service, _ = _service()
    service.create_item("fruits", "A", ItemDraft(id="ant", name="Ant", difficulty=1))
    _candidate(service, "ant", "blurry", 2.0)
    assert service.apply_quality_gate("fruits", "ant", "blurry") == GateDecision.REJECT
    assert service.rank_backlog("fruits")[0].score == 120

    service.remove_media("fruits", "ant", "blurry", actor="ops")

    (entry,) = service.rank_backlog("fruits")
    assert entry.score == 170


def test_scenario_b_publish_with_pending_acquisition_is_rejected() -> None:
    service, sink = _service()
    service.create_item("fruits", "A", ItemDraft(id="apple", name="Apple"))
    _approve(service, "apple", 2)
    before = service.get_category("fruits")
    events_before = len(sink.events)

    with pytest.raises(ValidationError, match="evidence required first") as excinfo:
        service.request_publication_change(
            "fruits", "apple", PublicationStatus.PUBLISHED, actor="ops"
        )

    assert str(excinfo.value) == PUBLISH_PENDING_MESSAGE
    after = service.get_category("fruits")
    assert after.model_dump() == before.model_dump()
    assert after.find_item("apple")[1].approved_count == 2
    assert len(sink.events) == events_before


def test_scenario_c_gap_report_through_service() -> None:
    service, _ = _service()
    for letter in "ABCDEFGHIJKLMNOPRSTUVWXYZ":
        item = service.create_item("fruits", letter, ItemDraft(name=f"{letter}fruit"))
        service.record_search_attempt("fruits", item.id)

    report = service.analyze_gaps("fruits")

    assert report.critical_letters == ["Q"]
    assert report.completeness_percentage == 96


def test_scenario_d_quality_gate_auto_approves_and_sets_primary() -> None:
    service, sink = _service()
    service.create_item("fruits", "A", ItemDraft(id="apple", name="Apple"))
    _candidate(service, "apple", "shiny", 9.0)
    _candidate(service, "apple", "blurry", 5.0)
    _candidate(service, "apple", "unscored", None)

    assert service.apply_quality_gate("fruits", "apple", "shiny") == GateDecision.AUTO_APPROVE
    assert service.apply_quality_gate("fruits", "apple", "blurry") == GateDecision.REJECT
    assert (
        service.apply_quality_gate("fruits", "apple", "unscored")
        == GateDecision.NEEDS_MANUAL_REVIEW
    )

    _, item = service.get_category("fruits").find_item("apple")
    assert item.primary is not None and item.primary.id == "shiny"
    assert item.find_media("blurry").rejection_reason is not None
    assert item.find_media("unscored").status == MediaStatus.MANUAL_REVIEW
    assert (item.collected_count, item.approved_count, item.rejected_count) == (3, 1, 1)
    assert any(event.action == "media_status_change" for event in sink.events)


def test_scenario_e_bulk_publish_isolates_failures() -> None:
    service, sink = _service()
    for item_id, name in (("apple", "Apple"), ("banana", "Banana"), ("cherry", "Cherry")):
        service.create_item("fruits", name[0], ItemDraft(id=item_id, name=name))
    _approve(service, "apple", 3)
    _approve(service, "cherry", 3)

    result = service.bulk_publication_change(
        "fruits", ["apple", "banana", "cherry"], PublicationStatus.PUBLISHED, actor="ops"
    )

    assert (result.succeeded, result.failed) == (2, 1)
    assert [entry.success for entry in result.results] == [True, False, True]
    assert result.results[1].error == PUBLISH_PENDING_MESSAGE
    category = service.get_category("fruits")
    assert category.find_item("apple")[1].publication_status == PublicationStatus.PUBLISHED
    assert category.find_item("banana")[1].publication_status == PublicationStatus.DRAFT
    assert category.find_item("cherry")[1].publication_status == PublicationStatus.PUBLISHED
    assert category.aggregate.published_items == 2
    assert sink.events[-1].action == "bulk_update_status"
    _assert_invariants(service)


def test_bulk_reports_unknown_items_without_aborting() -> None:
    service, _ = _service()
    service.create_item("fruits", "A", ItemDraft(id="apple", name="Apple"))
    _approve(service, "apple", 3)

    result = service.bulk_publication_change(
        "fruits", ["ghost", "apple"], PublicationStatus.REVIEW, actor="ops"
    )

    assert (result.succeeded, result.failed) == (1, 1)
    assert "ghost" in (result.results[0].error or "")


def test_approvals_complete_item_and_revocation_unpublishes() -> None:
    service, sink = _service()
    service.create_item("fruits", "A", ItemDraft(id="apple", name="Apple"))
    _approve(service, "apple", 3)
    service.request_publication_change("fruits", "apple", PublicationStatus.PUBLISHED, actor="ops")

    item = service.set_media_status(
        "fruits", "apple", "apple-0", MediaStatus.REJECTED, actor="ops", override=True
    )

    assert item.acquisition_status == AcquisitionStatus.PENDING
    assert item.publication_status == PublicationStatus.DRAFT
    assert item.published_at is not None
    actions = [event.action for event in sink.events]
    assert "auto_unpublish" in actions
    _assert_invariants(service)


def test_aggregate_is_recomputed_on_every_mutation() -> None:
    service, _ = _service()
    service.create_item("fruits", "A", ItemDraft(id="apple", name="Apple"))
    _approve(service, "apple", 3)

    aggregate = service.get_category("fruits").aggregate

    assert aggregate.completed_items == 1
    assert aggregate.media_counts[MediaStatus.APPROVED] == 3
    assert aggregate.letters_filled[0] is True
    assert service.recompute_aggregates("fruits") == aggregate


def test_remove_and_archive_flow() -> None:
    service, _ = _service()
    service.create_item("fruits", "A", ItemDraft(id="apple", name="Apple"))
    _candidate(service, "apple", "bad", 2.0)
    service.apply_quality_gate("fruits", "apple", "bad")

    item = service.remove_media("fruits", "apple", "bad", actor="ops")
    assert item.collected_count == 0

    service.archive_item("fruits", "apple", actor="ops")
    category = service.get_category("fruits")
    assert category.aggregate.total_items == 0
    assert category.aggregate.archived_items == 1
    assert service.rank_backlog("fruits") == []
    with pytest.raises(ValidationError):
        _candidate(service, "apple", "late", 9.0)


def test_search_attempts_exhaust_to_failed() -> None:
    config = CatalogConfig.model_validate({"lifecycle": {"max_search_attempts": 2}})
    service, _ = _service(config)
    service.create_item("fruits", "A", ItemDraft(id="apple", name="Apple"))

    service.record_search_attempt("fruits", "apple")
    item = service.record_search_attempt("fruits", "apple")

    assert item.acquisition_status == AcquisitionStatus.FAILED
    assert service.rank_backlog("fruits") == []

    retried = service.request_acquisition_change(
        "fruits", "apple", AcquisitionStatus.PENDING, actor="ops"
    )
    assert retried.search_attempts == 0


def test_platform_queries_span_categories() -> None:
    service, _ = _service()
    service.create_category(CategoryDraft(id="animals", name="Animals"))
    service.create_item("fruits", "A", ItemDraft(id="apple", name="Apple", difficulty=3))
    service.create_item("animals", "B", ItemDraft(id="bear", name="Bear"))

    backlog = service.platform_backlog(limit=5)
    gaps = service.analyze_platform_gaps()
    totals = service.platform_aggregates()

    assert [entry.item_id for entry in backlog] == ["bear", "apple"]
    assert gaps.total_categories == 2
    assert totals.total_items == 2


def test_concurrent_media_approvals_keep_counters_consistent() -> None:
    service, _ = _service()
    item_ids = [f"a{index}" for index in range(8)]
    for item_id in item_ids:
        service.create_item("fruits", "A", ItemDraft(id=item_id, name=f"Apple {item_id}"))

    def _work(item_id: str) -> None:
        _approve(service, item_id, 3)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(_work, item_ids))

    category = service.get_category("fruits")
    assert category.aggregate.completed_items == 8
    assert category.aggregate.media_counts[MediaStatus.APPROVED] == 24
    _assert_invariants(service)


def test_service_persists_through_state_repository(tmp_path: Path) -> None:
    repository = StateRepository(tmp_path)
    sink = JsonlAuditSink(repository.audit_log_path)
    service = CatalogService(repository, sink)
    service.create_category(CategoryDraft(id="fruits", name="Fruits"))
    service.create_item("fruits", "A", ItemDraft(id="apple", name="Apple"))
    _approve(service, "apple", 3)

    reopened = CatalogService(StateRepository(tmp_path))
    category = reopened.get_category("fruits")

    assert category.find_item("apple")[1].acquisition_status == AcquisitionStatus.COMPLETE
    assert category.aggregate == recompute(category)
    assert any(event.action == "acquisition_reevaluated" for event in sink.read())


def test_malformed_stored_items_do_not_block_reports(tmp_path: Path) -> None:
    repository = StateRepository(tmp_path)
    service = CatalogService(repository)
    service.create_category(CategoryDraft(id="fruits", name="Fruits"))
    service.create_item("fruits", "A", ItemDraft(id="apple", name="Apple"))
    path = repository.state_dir / "categories" / "fruits.json"
    document = json.loads(path.read_text(encoding="utf-8"))
    document["letters"][0][0]["difficulty"] = 0
    path.write_text(json.dumps(document), encoding="utf-8")
    (path.parent / "broken.json").write_text("{not json", encoding="utf-8")

    report = service.analyze_platform_gaps()
    platform = service.platform_aggregates()
    aggregate = service.recompute_aggregates("fruits")

    assert report.total_categories == 1
    assert platform.total_items == 1
    assert [entry.item_id for entry in service.platform_backlog()] == ["apple"]
    assert [(anomaly.item_id, anomaly.field) for anomaly in aggregate.anomalies] == [
        ("apple", "difficulty")
    ]
    assert service.get_category("fruits").find_item("apple")[1].difficulty == 1
