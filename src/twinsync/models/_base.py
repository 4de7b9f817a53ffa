"""Base model shared by the twinsync wire models.

Every message model inherits from :class:`TwinSyncBaseModel` which provides:

* ``alias_generator=to_camel`` so camelCase message keys (``oldValue``)
  map to snake_case fields while snake_case input is still accepted.
* Frozen instances: observations are values, never edited in place.
* :meth:`TwinSyncBaseModel.to_payload` producing the JSON-ready dict that
  is published or persisted.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(UTC)


class TwinSyncBaseModel(BaseModel):
    """Base for messages exchanged between the poller and the connectors."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-compatible message body (camelCase keys)."""
        return self.model_dump(mode="json", by_alias=True)
