"""Pytest configuration. Ensures backend root is on sys.path for imports like api.*, services.*, etc."""
import sys
from pathlib import Path

import pytest

_backend: Path = Path(__file__).resolve().parent
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))


@pytest.fixture(autouse=True)
def _fresh_singletons(monkeypatch):
    """Every test starts with an empty in-memory store and tracker."""
    from config import settings
    from services import cache_tracker, storage, sync_orchestrator

    monkeypatch.setattr(settings, "STORAGE_BACKEND", "memory")
    monkeypatch.setattr(storage, "_storage", None)
    monkeypatch.setattr(cache_tracker, "_tracker", None)
    monkeypatch.setattr(sync_orchestrator, "_orchestrator", None)
