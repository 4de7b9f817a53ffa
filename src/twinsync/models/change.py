"""Incremental change records produced by the differencer."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import Field, SerializerFunctionWrapHandler, ValidationError, field_validator, model_serializer

from twinsync.exceptions import MappingError
from twinsync.models._base import TwinSyncBaseModel, utcnow
from twinsync.models.asset import AssetKind

_logger = logging.getLogger(__name__)


class ChangeKind(StrEnum):
    ADDED = "added"
    UPDATED = "updated"
    REMOVED = "removed"


class PropertyChange(TwinSyncBaseModel):
    """Old and new value of one state property.

    A side on which the property did not exist is left *unset* rather than
    set to ``None``, so "absent" and "null" stay distinguishable.  Unset
    sides are omitted from the serialized payload.
    """

    property: str
    old_value: Any = None
    new_value: Any = None

    @property
    def existed_before(self) -> bool:
        return "old_value" in self.model_fields_set

    @property
    def exists_now(self) -> bool:
        return "new_value" in self.model_fields_set

    @model_serializer(mode="wrap")
    def _omit_absent(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        data: dict[str, Any] = handler(self)
        if not self.existed_before:
            data.pop("oldValue", None)
            data.pop("old_value", None)
        if not self.exists_now:
            data.pop("newValue", None)
            data.pop("new_value", None)
        return data


class AssetChange(TwinSyncBaseModel):
    """One change record per asset."""

    type: AssetKind
    id: str
    name: str = ""
    # Records emitted by older agents carry no change kind; they only ever
    # described property updates.
    change: ChangeKind = ChangeKind.UPDATED
    #: Gateway device type (``ZLLPresence``, ``Daylight``, ...); absent on older records.
    asset_type: str | None = None
    state: dict[str, Any] | None = None
    properties: list[PropertyChange] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class AssetChangeEvent(TwinSyncBaseModel):
    """All changes detected in one poll cycle."""

    timestamp: datetime = Field(default_factory=utcnow)
    changes: list[AssetChange] = Field(default_factory=list)

    @classmethod
    def parse_lenient(cls, data: Mapping[str, Any]) -> AssetChangeEvent:
        """Validate a raw change event, skipping malformed change records.

        One bad record (unknown type, missing id) must not cost the rest of
        the batch, so each entry is validated on its own and dropped with a
        warning when it does not fit.
        """
        raw_changes = data.get("changes")
        if not isinstance(raw_changes, list):
            raw_changes = []

        changes: list[AssetChange] = []
        for index, raw in enumerate(raw_changes):
            try:
                changes.append(AssetChange.model_validate(raw))
            except ValidationError as exc:
                _logger.warning(
                    "Skipping malformed change record #%d (%s): %s",
                    index,
                    raw.get("type") if isinstance(raw, Mapping) else type(raw).__name__,
                    exc.errors(include_url=False),
                )

        kwargs: dict[str, Any] = {"changes": changes}
        if data.get("timestamp") is not None:
            kwargs["timestamp"] = data["timestamp"]
        try:
            return cls.model_validate(kwargs)
        except ValidationError as exc:
            raise MappingError(f"Invalid change event timestamp: {data.get('timestamp')!r}") from exc
