import sys
from pathlib import Path

import pytest

# Ensure `backend/` is on sys.path so tests can import local modules
# like `geo.*`, `coordinator.*`, and `main`.
BACKEND_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_ROOT))


@pytest.fixture(autouse=True)
def _isolated_runtime(monkeypatch):
    # Telemetry tests opt back in with their own tmp path.
    monkeypatch.setenv("MARKERMAP_TELEMETRY", "0")
    yield
    from engine.instances import close_instances
    from maps.registry import clear_registry_cache

    close_instances()
    clear_registry_cache()
