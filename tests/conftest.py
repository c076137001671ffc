# tests/conftest.py

"""Pytest fixtures: a throwaway data directory and a Flask client bound to it"""

# Standard library imports
from datetime import datetime
from datetime import timedelta
from datetime import timezone

# Third party imports
import pytest

# Local imports
import server
from session import EditorSessions
from storage import JsonStorage


class StepClock:
    """Clock that advances one second per call so backup names are predictable"""

    def __init__(self, start=datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current


class FrozenClock:
    """Clock that never moves, for backup name collisions"""

    def __init__(self, at=datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)):
        self.at = at

    def __call__(self):
        return self.at


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def storage(data_dir):
    return JsonStorage(data_dir, clock=StepClock())


@pytest.fixture
def frozen_storage(data_dir):
    return JsonStorage(data_dir, clock=FrozenClock())


@pytest.fixture
def write_doc(data_dir):
    def write(name, text):
        (data_dir / name).write_text(text, encoding="utf-8")
        return data_dir / name

    return write


@pytest.fixture
def client(storage, monkeypatch):
    monkeypatch.setattr(server, "storage", storage)
    monkeypatch.setattr(server, "sessions", EditorSessions(protected_keys=["Content"], sort_field="Name"))
    server.app.config["TESTING"] = True
    with server.app.test_client() as test_client:
        yield test_client
