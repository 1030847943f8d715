import importlib.util
from pathlib import Path

import pytest

SCRIPT = Path(__file__).resolve().parent.parent / "admin-scripts" / "casino-stats.py"


@pytest.fixture(scope="module")
def stats_script():
    spec = importlib.util.spec_from_file_location("casino_stats_script", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_adjust_add_and_set(stats_script, db):
    result = stats_script.adjust_balance(db, "1", add=100, reason="refund")
    assert result == {"ok": True, "before": 200, "after": 300, "delta": 100, "message": "updated"}

    result = stats_script.adjust_balance(db, "1", set_to=40)
    assert (result["before"], result["after"], result["delta"]) == (300, 40, -260)


def test_adjust_refuses_going_below_zero(stats_script, db):
    result = stats_script.adjust_balance(db, "1", sub=250)
    assert not result["ok"]
    assert db.get_balance("1") == 200

    result = stats_script.adjust_balance(db, "1", set_to=-5)
    assert not result["ok"]
    assert db.get_balance("1") == 200


def test_adjust_sees_balance_changed_since_preview(stats_script, db):
    # Balance drops between the operator's preview and the confirmed run.
    db.debit("1", 150, "slots")
    result = stats_script.adjust_balance(db, "1", sub=100)
    assert not result["ok"]
    assert db.get_balance("1") == 50


def test_adjust_without_operation(stats_script, db):
    assert stats_script.adjust_balance(db, "1") == {"ok": False, "message": "No operation specified"}
