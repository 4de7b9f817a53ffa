"""Observed devices and device populations."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from twinsync.models._base import TwinSyncBaseModel, utcnow


class AssetKind(StrEnum):
    LIGHT = "light"
    SENSOR = "sensor"


class Asset(BaseModel):
    """One device as reported by the gateway.

    ``state`` holds the device-reported values.  Descriptive gateway fields
    (``modelid``, ``uniqueid``, ``config``, ...) are not declared but are
    kept as extra attributes so they survive persistence and mapping.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str
    name: str = ""
    type: str = ""
    state: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("name", "type", mode="before")
    @classmethod
    def _coerce_label(cls, value: Any) -> Any:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    @field_validator("state", mode="before")
    @classmethod
    def _coerce_state(cls, value: Any) -> Any:
        # Gateways occasionally send null or a list for state; treat as empty.
        return value if isinstance(value, dict) else {}

    @property
    def attributes(self) -> dict[str, Any]:
        """Descriptive fields reported alongside ``state``."""
        return dict(self.model_extra or {})

    def flatten(self) -> dict[str, Any]:
        """Merge the asset record and its state; state values win."""
        merged = self.model_dump(exclude={"state"})
        merged.update(self.state)
        return merged


class AssetPopulation(TwinSyncBaseModel):
    """Every light and sensor seen in one observation."""

    lights: list[Asset] = Field(default_factory=list)
    sensors: list[Asset] = Field(default_factory=list)

    def assets(self, kind: AssetKind) -> list[Asset]:
        return self.lights if kind == AssetKind.LIGHT else self.sensors


class AssetSnapshot(AssetPopulation):
    """A full population observation stamped with its capture time."""

    timestamp: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_population(cls, population: AssetPopulation, timestamp: datetime | None = None) -> AssetSnapshot:
        return cls(
            lights=population.lights,
            sensors=population.sensors,
            timestamp=timestamp if timestamp is not None else utcnow(),
        )

    def population(self) -> AssetPopulation:
        return AssetPopulation(lights=self.lights, sensors=self.sensors)
