"""
Domain models for person-store.

Defines the `Person` entity mapped to the `person` table (see
`person_store.persistence.schema`). Instances are immutable; the database-generated
id is attached exactly once through `with_id`.
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from person_store.errors import InvalidEntityError


class Person(BaseModel):
    """
    Representation of a single row in the `person` table.
    """

    id: Optional[int] = Field(None, description="Primary key (SERIAL), unset until inserted.")
    name: str = Field(..., description="Full name.")
    email: str = Field(..., description="Contact e-mail address.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
        "arbitrary_types_allowed": False,
    }

    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    def with_id(self, person_id: int) -> "Person":
        """
        Return a copy carrying the id assigned by the database.

        Raises
        ------
        InvalidEntityError
            If this person already has an id; ids never change once assigned.
        """
        if self.id is not None:
            raise InvalidEntityError(
                f"Person already has id={self.id}; refusing to reassign it to {person_id}."
            )
        return self.model_copy(update={"id": person_id})

    def __str__(self) -> str:
        return f"Person [id={self.id}, name={self.name}, email={self.email}]"


__all__ = ["Person"]
