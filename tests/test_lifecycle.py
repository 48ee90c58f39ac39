"""Item lifecycle state machine tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from abcatalog.config.models import LifecycleSettings
from abcatalog.lifecycle import (
    PUBLISH_PENDING_MESSAGE,
    InMemoryAuditSink,
    ItemLifecycle,
    JsonlAuditSink,
)
from abcatalog.state import StateError, ValidationError
from abcatalog.state.models import (
    AcquisitionStatus,
    Category,
    CollectionStrategy,
    Item,
    PublicationStatus,
)


def _category(target: int = 3, max_attempts: int = 5) -> Category:
    return Category(
        id="fruits",
        name="Fruits",
        strategy=CollectionStrategy(
            target_images_per_item=target, max_search_attempts=max_attempts
        ),
    )


def _item(**overrides: object) -> Item:
    fields: dict[str, object] = {"id": "apple", "name": "Apple", "letter": "A"}
    fields.update(overrides)
    return Item(**fields)


def test_reevaluate_completes_item_once_target_is_met() -> None:
    lifecycle = ItemLifecycle()
    item = _item(acquisition_status="collecting", approved_count=3)

    records = lifecycle.reevaluate(item, _category())

    assert item.acquisition_status == AcquisitionStatus.COMPLETE
    assert item.completed_at is not None
    assert [(record.before, record.after) for record in records] == [
        (AcquisitionStatus.COLLECTING, AcquisitionStatus.COMPLETE)
    ]


def test_reevaluate_reopens_complete_item_below_target() -> None:
    lifecycle = ItemLifecycle()
    item = _item(acquisition_status="complete", approved_count=2)

    lifecycle.reevaluate(item, _category())

    assert item.acquisition_status == AcquisitionStatus.PENDING
    assert item.completed_at is None


def test_reevaluate_leaves_in_progress_items_alone() -> None:
    lifecycle = ItemLifecycle()
    item = _item(acquisition_status="collecting", approved_count=1)

    assert lifecycle.reevaluate(item, _category()) == []
    assert item.acquisition_status == AcquisitionStatus.COLLECTING


def test_item_target_overrides_category_target() -> None:
    lifecycle = ItemLifecycle()
    item = _item(target_count=1, approved_count=1)

    lifecycle.reevaluate(item, _category(target=3))

    assert item.acquisition_status == AcquisitionStatus.COMPLETE


def test_any_approved_policy_completes_on_first_approval() -> None:
    lifecycle = ItemLifecycle(LifecycleSettings(completion_policy="any_approved"))
    item = _item(approved_count=1)

    lifecycle.reevaluate(item, _category(target=3))

    assert lifecycle.effective_target(item, _category(target=3)) == 1
    assert item.acquisition_status == AcquisitionStatus.COMPLETE


def test_publish_with_pending_acquisition_is_rejected_and_item_unchanged() -> None:
    lifecycle = ItemLifecycle()
    item = _item(approved_count=2)
    snapshot = item.model_dump()

    with pytest.raises(ValidationError) as excinfo:
        lifecycle.request_publication_change(item, PublicationStatus.PUBLISHED, actor="ops")

    assert str(excinfo.value) == PUBLISH_PENDING_MESSAGE
    assert item.model_dump() == snapshot


def test_first_publish_stamps_once_and_unpublish_keeps_history() -> None:
    lifecycle = ItemLifecycle()
    item = _item(acquisition_status="collecting")

    lifecycle.request_publication_change(item, PublicationStatus.PUBLISHED, actor="alice")
    stamped_at = item.published_at
    assert lifecycle.request_publication_change(
        item, PublicationStatus.PUBLISHED, actor="bob"
    ) == []
    lifecycle.request_publication_change(item, PublicationStatus.DRAFT, actor="bob")

    assert item.publication_status == PublicationStatus.DRAFT
    assert item.published_at == stamped_at
    assert item.published_by == "alice"

    lifecycle.request_publication_change(item, PublicationStatus.PUBLISHED, actor="carol")
    assert item.published_at == stamped_at
    assert item.published_by == "alice"


def test_review_flow_and_invalid_publication_transition() -> None:
    lifecycle = ItemLifecycle()
    item = _item(acquisition_status="complete", approved_count=3)

    lifecycle.request_publication_change(item, PublicationStatus.REVIEW, actor="ops")
    lifecycle.request_publication_change(item, PublicationStatus.PUBLISHED, actor="ops")

    with pytest.raises(ValidationError):
        lifecycle.request_publication_change(item, PublicationStatus.REVIEW, actor="ops")
    assert item.publication_status == PublicationStatus.PUBLISHED


def test_complete_requires_target() -> None:
    lifecycle = ItemLifecycle()
    item = _item(acquisition_status="collecting", approved_count=2)

    with pytest.raises(ValidationError):
        lifecycle.request_acquisition_change(
            item, _category(), AcquisitionStatus.COMPLETE, actor="ops"
        )
    assert item.acquisition_status == AcquisitionStatus.COLLECTING


def test_complete_item_at_target_cannot_be_reopened() -> None:
    lifecycle = ItemLifecycle()
    item = _item(acquisition_status="complete", approved_count=3)

    with pytest.raises(ValidationError):
        lifecycle.request_acquisition_change(
            item, _category(), AcquisitionStatus.PENDING, actor="ops"
        )


def test_invalid_acquisition_transition_is_rejected() -> None:
    lifecycle = ItemLifecycle()
    item = _item()

    with pytest.raises(ValidationError):
        lifecycle.request_acquisition_change(
            item, _category(), AcquisitionStatus.FAILED, actor="ops"
        )


def test_unknown_statuses_are_normalized_on_matching_request() -> None:
    lifecycle = ItemLifecycle()
    item = _item(acquisition_status="mystery", publication_status="mystery")
    assert item.acquisition_status is None

    acquisition = lifecycle.request_acquisition_change(
        item, _category(), AcquisitionStatus.PENDING, actor="ops"
    )
    publication = lifecycle.request_publication_change(item, PublicationStatus.DRAFT, actor="ops")

    assert item.acquisition_status == AcquisitionStatus.PENDING
    assert item.publication_status == PublicationStatus.DRAFT
    assert [(record.before, record.after) for record in acquisition] == [
        (None, AcquisitionStatus.PENDING)
    ]
    assert len(publication) == 1
    assert lifecycle.request_acquisition_change(
        item, _category(), AcquisitionStatus.PENDING, actor="ops"
    ) == []


def test_failed_retry_resets_search_attempts() -> None:
    lifecycle = ItemLifecycle()
    item = _item(acquisition_status="failed", search_attempts=5)

    lifecycle.request_acquisition_change(item, _category(), AcquisitionStatus.PENDING, actor="ops")

    assert item.acquisition_status == AcquisitionStatus.PENDING
    assert item.search_attempts == 0


def test_return_to_pending_auto_unpublishes() -> None:
    lifecycle = ItemLifecycle()
    item = _item(acquisition_status="collecting", publication_status="published")

    records = lifecycle.request_acquisition_change(
        item, _category(), AcquisitionStatus.PENDING, actor="ops"
    )

    assert item.acquisition_status == AcquisitionStatus.PENDING
    assert item.publication_status == PublicationStatus.DRAFT
    assert [record.action for record in records] == ["acquisition_change", "auto_unpublish"]


def test_search_attempts_start_collecting_then_fail() -> None:
    lifecycle = ItemLifecycle()
    category = _category(max_attempts=2)
    item = _item()

    first = lifecycle.record_search_attempt(item, category)
    assert item.acquisition_status == AcquisitionStatus.COLLECTING
    assert [record.action for record in first] == ["search_started"]

    lifecycle.record_search_attempt(item, category)
    assert item.acquisition_status == AcquisitionStatus.FAILED
    assert item.search_attempts == 2

    with pytest.raises(ValidationError):
        lifecycle.record_search_attempt(item, category)


def test_archived_items_reject_transitions() -> None:
    lifecycle = ItemLifecycle()
    item = _item(acquisition_status="collecting")
    lifecycle.archive(item, actor="ops")

    assert item.is_archived
    with pytest.raises(ValidationError):
        lifecycle.request_publication_change(item, PublicationStatus.REVIEW, actor="ops")
    with pytest.raises(ValidationError):
        lifecycle.archive(item, actor="ops")


def test_transition_record_converts_to_audit_event() -> None:
    lifecycle = ItemLifecycle()
    item = _item(acquisition_status="collecting")
    sink = InMemoryAuditSink()

    for record in lifecycle.request_publication_change(
        item, PublicationStatus.REVIEW, actor="ops"
    ):
        sink.record(record.to_event("fruits"))

    (event,) = sink.events
    assert event.actor == "ops"
    assert event.resource_id == "apple"
    assert event.category_id == "fruits"
    assert event.before == {"publication_status": "draft"}
    assert event.after == {"publication_status": "review"}


def test_jsonl_audit_sink_round_trip(tmp_path: Path) -> None:
    lifecycle = ItemLifecycle()
    item = _item(acquisition_status="collecting")
    sink = JsonlAuditSink(tmp_path / "audit.jsonl")

    for record in lifecycle.request_publication_change(
        item, PublicationStatus.PUBLISHED, actor="ops"
    ):
        sink.record(record.to_event("fruits"))

    lines = sink.path.read_text(encoding="utf-8").splitlines()
    assert json.loads(lines[0])["action"] == "publication_change"
    assert sink.read()[0].after == {"publication_status": "published"}


def test_jsonl_audit_sink_rejects_corrupt_lines(tmp_path: Path) -> None:
    path = tmp_path / "audit.jsonl"
    path.write_text("not json\n", encoding="utf-8")

    with pytest.raises(StateError):
        JsonlAuditSink(path).read()
