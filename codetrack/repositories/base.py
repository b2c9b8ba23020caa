"""Typed table access: one repository per entity over a shared Session."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from sqlalchemy.orm import Query, Session

from codetrack.db.session import Base
from codetrack.services.errors import NotFoundError

ModelT = TypeVar("ModelT", bound=Base)


class Repository(Generic[ModelT]):
    """CRUD for a single mapped class.

    Subclasses set ``model`` and add the entity's own queries. Writes flush but
    never commit; the calling service owns the transaction.
    """

    model: type[ModelT]
    resource: str = "record"

    def __init__(self, db: Session) -> None:
        self.db = db

    def query(self) -> Query[ModelT]:
        return self.db.query(self.model)

    def get(self, ident: Any) -> ModelT | None:
        return self.db.get(self.model, ident)

    def require(self, ident: Any) -> ModelT:
        """Like get, but raises NotFoundError."""
        row = self.get(ident)
        if row is None:
            raise NotFoundError(self.resource, ident)
        return row

    def list_by(self, **filters: Any) -> list[ModelT]:
        return self.query().filter_by(**filters).all()

    def add(self, row: ModelT) -> ModelT:
        self.db.add(row)
        self.db.flush()
        return row

    def delete(self, row: ModelT) -> None:
        self.db.delete(row)
        self.db.flush()
