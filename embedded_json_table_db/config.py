"""Option models for opening a database."""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CacheOptions(BaseModel):
    """Write-back cache configuration. Presence enables the cache."""

    model_config = ConfigDict(extra="forbid")

    interval: int = Field(gt=0, description="Flush interval in milliseconds")

    @property
    def interval_seconds(self) -> float:
        return self.interval / 1000.0


class JsonOptions(BaseModel):
    """On-disk JSON formatting."""

    model_config = ConfigDict(extra="forbid")

    spaces: Optional[int] = Field(
        default=None, ge=0, description="Indentation; None writes compact JSON"
    )


class DatabaseOptions(BaseModel):
    """Top-level options: path, optional cache, JSON formatting."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    path: str = Field(description="Path of the .json document")
    cache: Optional[CacheOptions] = Field(default=None)
    json_options: JsonOptions = Field(default_factory=JsonOptions, alias="json")

    @field_validator("path", mode="before")
    @classmethod
    def _check_path(cls, v: Any) -> str:
        path = str(v)
        if not path.lower().endswith(".json") or len(path) <= len(".json"):
            raise ValueError(f"path must name a .json file, got {path!r}")
        return path

    @property
    def cache_enabled(self) -> bool:
        return self.cache is not None

    @property
    def spaces(self) -> Optional[int]:
        return self.json_options.spaces

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "DatabaseOptions":
        return cls.model_validate(data)
