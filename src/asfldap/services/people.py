"""Directory of people."""

from __future__ import annotations

from typing import override

from ..models.attributes import LazyAttributes
from ..models.entities import Person
from .base import EntityDirectory

__all__ = ["PersonDirectory"]


class PersonDirectory(EntityDirectory[Person]):
    """Lookups of people, keyed by uid."""

    key_attribute = "uid"

    @override
    async def get_dn(self, entity: Person) -> str | None:
        return await entity.get_dn()

    @override
    def _build(self, name: str, attributes: LazyAttributes) -> Person:
        return Person(name, attributes)
