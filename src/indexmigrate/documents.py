"""
Pydantic base classes for documents stored in migrated indices.

Each migration owns a frozen copy of the document shapes it reads and
writes, so old migrations keep working after the live models move on.
Fields declare their search engine mapping with ``mapped()``; the mapping of
an index is generated from the model instead of being written by hand.

Example:
    >>> class Book(IndexDocument):
    ...     primary_name: str = mapped("text", name="np")
    ...     rating: str = mapped("keyword", name="ra", doc_values=False)
    ...     tag_count: int = mapped("integer", name="tC", default=0)
    ...
    ...     def refresh_derived(self) -> None:
    ...         self.tag_count = len(self.primary_name.split())
    ...
    >>> Book.index_mappings()["properties"]["np"]
    {'type': 'text'}
"""

from __future__ import annotations

import types
from collections.abc import Callable
from typing import Any, Self, Union, get_args, get_origin

from pydantic import BaseModel, ConfigDict, Field
from pydantic.fields import FieldInfo

from indexmigrate.search.interface import SearchDocument

_MAPPING_KEY = "es_mapping"


def mapped(
    field_type: str,
    *,
    name: str | None = None,
    default: Any = ...,
    default_factory: Callable[[], Any] | None = None,
    **options: Any,
) -> Any:
    """
    Declare a document field together with its search engine mapping.

    Args:
        field_type: Mapping type ("text", "keyword", "date", "object", ...)
        name: Stored field name in the index, if different from the attribute
        default: Field default (required when neither default is given)
        default_factory: Factory for mutable defaults
        **options: Extra mapping parameters such as ``index=False``

    Returns:
        A pydantic FieldInfo carrying the mapping
    """
    extra = {_MAPPING_KEY: {"type": field_type, **options}}

    if default_factory is not None:
        return Field(default_factory=default_factory, alias=name, json_schema_extra=extra)
    return Field(default, alias=name, json_schema_extra=extra)


class MappedModel(BaseModel):
    """
    Base for models whose fields carry search engine mappings.

    Used directly for nested objects; top-level documents derive from
    IndexDocument.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @classmethod
    def mapping_properties(cls) -> dict[str, Any]:
        """
        Mapping properties of every mapped field, keyed by stored name.

        Fields declared without ``mapped()`` are stored but not indexed.
        Nested MappedModel fields of type "object" or "nested" get their own
        properties unless the mapping disables the object.
        """
        properties: dict[str, Any] = {}

        for attr, info in cls.model_fields.items():
            mapping = _field_mapping(info)
            if mapping is None:
                continue

            nested = _nested_model(info.annotation)
            if (
                nested is not None
                and mapping["type"] in ("object", "nested")
                and mapping.get("enabled", True)
            ):
                mapping["properties"] = nested.mapping_properties()

            properties[info.alias or attr] = mapping

        return properties


class IndexDocument(MappedModel):
    """
    Base class for top-level documents of an index.

    Attributes:
        id: Document id, also stored in the source as an unindexed keyword
    """

    id: str = mapped("keyword", index=False)

    @classmethod
    def index_mappings(cls) -> dict[str, Any]:
        """Index mappings for an index holding this document type."""
        return {"dynamic": False, "properties": cls.mapping_properties()}

    @classmethod
    def from_search_document(cls, document: SearchDocument) -> Self:
        """Validate a stored document into this type."""
        return cls.model_validate({**document.source, "id": document.id})

    def to_search_document(self) -> SearchDocument:
        """Serialize into the stored form, using stored field names."""
        return SearchDocument(id=self.id, source=self.model_dump(mode="json", by_alias=True))

    def refresh_derived(self) -> None:
        """
        Recompute cached fields derived from the rest of the document.

        Called on every document written by a reindex. The default does
        nothing.
        """


def _field_mapping(info: FieldInfo) -> dict[str, Any] | None:
    extra = info.json_schema_extra
    if not isinstance(extra, dict) or _MAPPING_KEY not in extra:
        return None
    return dict(extra[_MAPPING_KEY])  # type: ignore[arg-type]


def _nested_model(annotation: Any) -> type[MappedModel] | None:
    if isinstance(annotation, type) and issubclass(annotation, MappedModel):
        return annotation

    origin = get_origin(annotation)
    if origin in (list, tuple, set, Union, types.UnionType):
        for arg in get_args(annotation):
            nested = _nested_model(arg)
            if nested is not None:
                return nested

    return None


__all__ = ["IndexDocument", "MappedModel", "mapped"]
