from packlab.repositories.packaging_tests import (
    DEFAULT_SNAPSHOT_KEY,
    PostgresTestsRepository,
    SnapshotTestsRepository,
)

__all__ = [
    "DEFAULT_SNAPSHOT_KEY",
    "PostgresTestsRepository",
    "SnapshotTestsRepository",
]
