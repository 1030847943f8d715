"""Pytest fixtures for the casino: a throwaway sqlite ledger and scripted draws."""

import sys
from pathlib import Path

import pytest


def _ensure_repo_on_path() -> None:
    """Make the flat modules importable without an editable install."""
    repo_root = str(Path(__file__).resolve().parent.parent)
    if repo_root not in sys.path:
        sys.path.insert(0, repo_root)


_ensure_repo_on_path()

from casino_core import Casino, CasinoSettings  # noqa: E402
from casino_db import CasinoDB  # noqa: E402


class Script:
    """Deterministic draw source: returns queued values, each must be below n."""

    def __init__(self, *values):
        self.values = list(values)

    def __call__(self, n):
        value = self.values.pop(0)
        assert 0 <= value < n, f"scripted draw {value} out of range for {n}"
        return value


@pytest.fixture
def script():
    return Script


@pytest.fixture
def db(tmp_path):
    database = CasinoDB(str(tmp_path / "casino.db"), starting_balance=200)
    database.init_db()
    return database


@pytest.fixture
def casino(db):
    return Casino(db, CasinoSettings(db=db.path))
