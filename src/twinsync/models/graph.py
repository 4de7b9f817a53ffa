"""Graph schema (model) definitions.

Models follow the DTDL v3 interface shape used by Azure Digital Twins:
``@id``/``@type``/``@context`` keys, a ``displayName``, optional
``extends`` and a ``contents`` list of properties and relationships.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

DTDL_CONTEXT = "dtmi:dtdl:context;3"


class ModelContent(BaseModel):
    """A declared property or relationship of a model."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    type: Literal["Property", "Relationship"] = Field(alias="@type")
    name: str
    schema_: str | dict[str, Any] | None = Field(default=None, alias="schema")
    target: str | None = None
    writable: bool | None = None


class GraphModel(BaseModel):
    """A schema a node can be typed by."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    id: str = Field(alias="@id")
    type: Literal["Interface"] = Field(default="Interface", alias="@type")
    context: str = Field(default=DTDL_CONTEXT, alias="@context")
    display_name: str = Field(alias="displayName")
    extends: list[str] = Field(default_factory=list)
    contents: list[ModelContent] = Field(default_factory=list)

    def property_names(self) -> list[str]:
        """Names of the properties this model declares itself."""
        return [content.name for content in self.contents if content.type == "Property"]

    def to_dtdl(self) -> dict[str, Any]:
        """Return the model document as the graph store expects it."""
        document = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        if not self.extends:
            document.pop("extends", None)
        return document


def prop(name: str, schema: str | dict[str, Any]) -> ModelContent:
    return ModelContent.model_validate({"@type": "Property", "name": name, "schema": schema, "writable": True})


def relationship(name: str, target: str) -> ModelContent:
    return ModelContent.model_validate({"@type": "Relationship", "name": name, "target": target})


def interface(
    model_id: str,
    display_name: str,
    contents: Iterable[ModelContent],
    *,
    extends: Iterable[str] = (),
) -> GraphModel:
    return GraphModel.model_validate(
        {
            "@id": model_id,
            "displayName": display_name,
            "extends": list(extends),
            "contents": list(contents),
        }
    )
