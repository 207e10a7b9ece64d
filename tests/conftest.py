import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from packlab.errors import RemoteUnavailableError
from packlab.image_fallback import SqliteImageStore
from packlab.normalizer import normalize_record
from packlab.record_cache import RecordCache
from packlab.record_store import RecordStore, sort_most_recent_first
from packlab.repositories.packaging_tests import SnapshotTestsRepository


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRemoteTests:
    """In-process stand-in for the PostgreSQL repository; flip ``available`` to simulate outages."""

    def __init__(self):
        self.available = True
        self.rows: dict[int, dict] = {}
        self.calls: list[str] = []
        self.fail_on_add = False

    def _check(self, op: str) -> None:
        self.calls.append(op)
        if not self.available:
            raise RemoteUnavailableError(f"{op}: connection refused")

    def list_tests(self):
        self._check("list_tests")
        return sort_most_recent_first([dict(x) for x in self.rows.values()])

    def get_test(self, test_id):
        self._check("get_test")
        row = self.rows.get(test_id)
        return dict(row) if row is not None else None

    def add_test(self, test):
        self._check("add_test")
        if self.fail_on_add:
            raise RemoteUnavailableError("insert into test_cases failed")
        confirmed = normalize_record(test)
        self.rows[confirmed["id"]] = confirmed
        return confirmed

    def delete_test(self, test_id):
        self._check("delete_test")
        return self.rows.pop(test_id, None) is not None


def make_test(test_id: int = 1700000000000, *, date: str = "2024-05-01", **overrides) -> dict:
    test = {
        "id": test_id,
        "testType": "drop",
        "dateOfTest": date,
        "testerName": "R. Hartono",
        "brandName": "Kopi Kita",
        "productName": "Cold Brew 250ml",
        "productSku": "KK-CB-250",
        "testNotes": "",
        "overallConclusion": "pass with notes",
        "recommendations": "",
        "transportMethod": "",
        "originLocation": "",
        "destinationLocation": "",
        "transportDuration": "",
        "cases": [
            {
                "position": "top",
                "totalUnitsInspected": 24,
                "caseDamage": {"type": "dent", "description": "corner crushed", "imageId": "idb-3"},
                "productFailures": [
                    {"mode": "leak", "unitsFailed": 2, "imageId": None},
                    {"mode": "label torn", "unitsFailed": 1, "imageId": "https://cdn.example.com/img/1.jpg"},
                ],
            }
        ],
    }
    test.update(overrides)
    return test


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def remote() -> FakeRemoteTests:
    return FakeRemoteTests()


@pytest.fixture
def snapshot(tmp_path: pathlib.Path) -> SnapshotTestsRepository:
    return SnapshotTestsRepository(tmp_path / "snapshot.sqlite3")


@pytest.fixture
def record_store(remote, snapshot, clock) -> RecordStore:
    return RecordStore(remote=remote, snapshot=snapshot, cache=RecordCache(ttl_ms=5000, clock=clock))


@pytest.fixture
def image_store(tmp_path: pathlib.Path):
    store = SqliteImageStore(tmp_path / "images.sqlite3").open()
    yield store
    store.close()
