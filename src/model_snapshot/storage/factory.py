"""Builds the configured storage driver."""

from typing import Optional

from model_snapshot.config import SnapshotConfig
from model_snapshot.errors import ConfigurationError
from model_snapshot.models.enums import StorageDriver
from model_snapshot.storage.base import Clock, SnapshotStorage
from model_snapshot.storage.file import FileSnapshotStorage
from model_snapshot.storage.in_memory import InMemorySnapshotStorage
from model_snapshot.storage.sql import SQLSnapshotStorage


def create_storage(
    config: SnapshotConfig, clock: Optional[Clock] = None
) -> SnapshotStorage:
    """Instantiates the storage driver selected by ``config.driver``.

    Raises:
        ConfigurationError: If the driver is not one of the supported ones.
    """
    match config.driver:
        case StorageDriver.MEMORY:
            return InMemorySnapshotStorage(clock=clock)
        case StorageDriver.FILE:
            return FileSnapshotStorage(config.file.path, clock=clock)
        case StorageDriver.DATABASE:
            return SQLSnapshotStorage(config.database.url, clock=clock)
        case _:
            raise ConfigurationError(
                f"Unsupported storage driver: {config.driver}"
            )
