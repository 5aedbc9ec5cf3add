import pytest

from talentsift.types import advance_status


def test_status_moves_forward() -> None:
    assert advance_status("imported", "parsed") == "parsed"
    assert advance_status("parsed", "ranked") == "ranked"
    assert advance_status(None, "imported") == "imported"


def test_status_never_regresses() -> None:
    assert advance_status("ranked", "parsed") == "ranked"
    assert advance_status("contacted", "imported") == "contacted"
    assert advance_status("parsed", "parsed") == "parsed"


def test_unknown_target_status_is_rejected() -> None:
    with pytest.raises(ValueError):
        advance_status("imported", "archived")
