"""Configuration for the snapshot engine.

Configuration is a tree of pydantic models. ``load_config`` reads an optional
YAML file and applies environment overrides on top of it.
"""

import os
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from model_snapshot.errors import ConfigurationError
from model_snapshot.models.enums import LifecycleEvent, StorageDriver


DEFAULT_SQLITE_URL = "sqlite:///./model_snapshot.sqlite3"
DEFAULT_FILE_PATH = "./snapshots"


class SerializationOptions(BaseModel):
    """Controls how a subject is turned into a payload."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    include_hidden: bool = Field(
        default=False, description="Include fields the subject declares hidden."
    )
    include_timestamps: bool = Field(
        default=True, description="Capture timestamp fields under `timestamps`."
    )
    include_relationships: bool = Field(
        default=True, description="Capture declared relationships."
    )
    max_relationship_depth: int = Field(
        default=3,
        ge=0,
        description="Relationship nesting cutoff; 0 captures no relationships.",
    )
    exclude_fields: tuple[str, ...] = Field(
        default=(), description="Fields never captured."
    )


class FileDriverConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    path: str = Field(default=DEFAULT_FILE_PATH)


class DatabaseDriverConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str = Field(default=DEFAULT_SQLITE_URL)


class RetentionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(default=True)
    days: int = Field(default=30, ge=0)


class AutomaticCaptureConfig(BaseModel):
    """Gates capture triggered by host lifecycle events.

    Attributes:
        enabled: Global switch for automatic capture.
        events: Events used for subject types configured with ``None``.
        subjects: Subject type name to the lifecycle events that trigger a
            capture, or ``None`` to use ``events``. Types not listed are
            never captured automatically.
    """

    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(default=False)
    events: list[LifecycleEvent] = Field(
        default_factory=lambda: list(LifecycleEvent)
    )
    subjects: dict[str, Optional[list[LifecycleEvent]]] = Field(
        default_factory=dict
    )

    def events_for(self, subject_type: str) -> list[LifecycleEvent]:
        if not self.enabled or subject_type not in self.subjects:
            return []
        configured = self.subjects[subject_type]
        return list(self.events if configured is None else configured)


class ReportConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_timeline_entries: int = Field(default=100, ge=1)
    include_diffs: bool = Field(default=False)


class SnapshotConfig(BaseModel):
    """Top-level configuration surface."""

    model_config = ConfigDict(extra="forbid")

    driver: StorageDriver = Field(default=StorageDriver.DATABASE)
    file: FileDriverConfig = Field(default_factory=FileDriverConfig)
    database: DatabaseDriverConfig = Field(default_factory=DatabaseDriverConfig)
    serialization: SerializationOptions = Field(
        default_factory=SerializationOptions
    )
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    automatic: AutomaticCaptureConfig = Field(
        default_factory=AutomaticCaptureConfig
    )
    reports: ReportConfig = Field(default_factory=ReportConfig)


_ENV_OVERRIDES = {
    "SNAPSHOT_DRIVER": ("driver",),
    "SNAPSHOT_FILE_PATH": ("file", "path"),
    "SNAPSHOT_DATABASE_URL": ("database", "url"),
    "SNAPSHOT_RETENTION_DAYS": ("retention", "days"),
}


def _apply_env(raw: dict[str, Any], environ) -> dict[str, Any]:
    for var, path in _ENV_OVERRIDES.items():
        value = environ.get(var)
        if not value:
            continue
        node = raw
        for part in path[:-1]:
            node = node.setdefault(part, {})
        node[path[-1]] = value
    return raw


def load_config(
    path: Optional[Union[str, Path]] = None, environ=None
) -> SnapshotConfig:
    """Loads the configuration from YAML and the environment.

    Args:
        path: Optional YAML file. Defaults to the ``SNAPSHOT_CONFIG`` env var;
            when neither is set only defaults and env overrides apply.
        environ: Mapping used for overrides. Defaults to ``os.environ``.

    Returns:
        The validated configuration.

    Raises:
        ConfigurationError: If the file is unreadable or the result invalid.
    """
    environ = os.environ if environ is None else environ
    path = path or environ.get("SNAPSHOT_CONFIG")

    raw: dict[str, Any] = {}
    if path:
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"Cannot read configuration {path}: {e}"
            ) from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigurationError(
                f"Configuration {path} must be a mapping at the top level"
            )
        raw = loaded or {}

    try:
        return SnapshotConfig.model_validate(_apply_env(raw, environ))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
