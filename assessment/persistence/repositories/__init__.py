"""Repository implementations."""

from assessment.persistence.repositories.snapshot_repo import SnapshotRepository

__all__ = [
    "SnapshotRepository",
]
