import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def pytest_ignore_collect(collection_path, config):
    parts = Path(str(collection_path)).parts
    if "scripts" in parts or "manual" in parts:
        return True
    return None


@pytest.fixture(autouse=True)
def _isolated_log(tmp_path, monkeypatch):
    """Keep test runs from appending to the real ride_ocr_log.txt."""
    import utils

    monkeypatch.setattr(utils, "LOG_PATH", str(tmp_path / "ride_ocr_log.txt"))
