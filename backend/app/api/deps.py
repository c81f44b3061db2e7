from __future__ import annotations

from dataclasses import dataclass
from typing import Generator

from fastapi import Header, Query

from backend.app.core.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from backend.app.db.session import SessionLocal


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@dataclass(frozen=True)
class Actor:
    """Tenant + utilisateur courant, fournis par l'auth externe (attribution uniquement)."""

    tenant_id: int
    user_id: int


def get_actor(
    tenant_id: int = Header(alias="X-Tenant-Id"),
    user_id: int = Header(alias="X-User-Id"),
) -> Actor:
    return Actor(tenant_id=tenant_id, user_id=user_id)


@dataclass(frozen=True)
class Pagination:
    page: int
    rows_per_page: int

    @property
    def limit(self) -> int:
        return self.rows_per_page

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.rows_per_page

    def envelope(self, items: list, total: int) -> dict:
        return {
            "items": items,
            "total": total,
            "start_range": self.offset + 1,
            "end_range": self.offset + len(items),
        }


def get_pagination(
    page: int = Query(default=1, ge=1),
    rows_per_page: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
) -> Pagination:
    return Pagination(page=page, rows_per_page=rows_per_page)
