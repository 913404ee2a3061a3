import pytest

from plan_flow.checklist import ChecklistProgress, ContentHashKeying
from plan_flow.errors import InvalidIndexError

STEPS = ["Register FSSAI", "Get BBMP trade licence", "Buy cart"]


def test_toggle_by_index() -> None:
    progress = ChecklistProgress()

    assert progress.toggle(STEPS, 1) is True
    assert [item.completed for item in progress.view(STEPS)] == [False, True, False]
    assert progress.toggle(STEPS, 1) is False
    assert not progress.is_completed(STEPS, 1)


def test_index_keying_follows_position_after_regeneration() -> None:
    progress = ChecklistProgress()
    progress.toggle(STEPS, 0)

    regenerated = ["Buy cart", "Register FSSAI"]

    # Positional marks stay with the slot, not the step text.
    assert progress.is_completed(regenerated, 0)
    assert not progress.is_completed(regenerated, 1)


def test_content_hash_keying_follows_text() -> None:
    progress = ChecklistProgress(ContentHashKeying())
    progress.toggle(STEPS, 0)

    regenerated = ["Buy cart", "register  fssai"]

    assert not progress.is_completed(regenerated, 0)
    assert progress.is_completed(regenerated, 1)


def test_toggle_rejects_out_of_range() -> None:
    with pytest.raises(InvalidIndexError):
        ChecklistProgress().toggle(STEPS, 3)
