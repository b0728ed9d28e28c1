"""Database repositories for Compliance Agent entities."""

from __future__ import annotations

from typing import Any, Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_agent.db.tables import AuditEventTable
from compliance_agent.engine.resources import ResourceSpec, Scope
from compliance_agent.utils.time import utc_now

UNIQUE_VIOLATION = "23505"


def is_unique_violation(exc: IntegrityError) -> bool:
    """True when the store rejected a write on a uniqueness constraint."""
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == UNIQUE_VIOLATION:
        return True
    return "unique" in str(orig).lower()


def row_to_record(row: Any) -> dict[str, Any]:
    """Flatten an ORM row into a plain column-keyed dict."""
    return {column.key: getattr(row, column.key) for column in row.__table__.columns}


class VersionedRepository:
    """Tenant-scoped CRUD over one versioned resource table.

    Updates are a single compare-and-increment statement; a zero row count
    is the only signal of a stale version, wrong tenant or missing row.
    """

    def __init__(self, session: AsyncSession, spec: ResourceSpec):
        self.session = session
        self.spec = spec
        self.table = spec.table

    def _scope_clauses(self, scope: Scope) -> list[Any]:
        clauses = [self.table.tenant_id == scope.tenant_id, self.table.deleted_at.is_(None)]
        if self.spec.parent is not None and scope.parent_id is not None:
            clauses.append(self.spec.column(self.spec.parent.field) == scope.parent_id)
        return clauses

    async def create(self, values: dict[str, Any]) -> Any:
        """Insert a row at version 1. IntegrityError propagates to the caller."""
        now = utc_now()
        row = self.table(**values, version=1, created_at=now, updated_at=now)
        self.session.add(row)
        await self.session.flush()
        return row

    async def list(
        self,
        scope: Scope,
        *,
        search: Optional[str] = None,
        filters: Optional[dict[str, Any]] = None,
        sort_by: Optional[str] = None,
        descending: bool = True,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[dict[str, Any]], int]:
        """Return one page of live rows plus the total match count."""
        clauses = self._scope_clauses(scope)
        if search and self.spec.search_columns:
            clauses.append(
                or_(
                    *(
                        self.spec.column(name).icontains(search, autoescape=True)
                        for name in self.spec.search_columns
                    )
                )
            )
        for name, value in (filters or {}).items():
            clauses.append(self.spec.column(name) == value)

        total = await self.session.scalar(
            select(func.count()).select_from(self.table).where(*clauses)
        )

        sort_column = self.spec.sort_column(sort_by)
        ordering = sort_column.desc() if descending else sort_column.asc()
        id_ordering = self.table.id.desc() if descending else self.table.id.asc()
        result = await self.session.execute(
            select(self.table)
            .where(*clauses)
            .order_by(ordering, id_ordering)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return [row_to_record(row) for row in result.scalars()], int(total or 0)

    async def get_row(self, scope: Scope, row_id: UUID) -> Any:
        result = await self.session.execute(
            select(self.table)
            .where(self.table.id == row_id, *self._scope_clauses(scope))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, scope: Scope, row_id: UUID) -> Optional[dict[str, Any]]:
        """Fetch a live row by id inside the scope, or None."""
        row = await self.get_row(scope, row_id)
        return row_to_record(row) if row is not None else None

    async def find(self, scope: Scope, *conditions: Any) -> list[Any]:
        """Live rows in the scope matching extra conditions, oldest first."""
        result = await self.session.execute(
            select(self.table)
            .where(*self._scope_clauses(scope), *conditions)
            .order_by(self.table.created_at.asc(), self.table.id.asc())
        )
        return list(result.scalars())

    async def exists(self, scope: Scope, row_id: UUID) -> bool:
        result = await self.session.execute(
            select(self.table.id).where(self.table.id == row_id, *self._scope_clauses(scope))
        )
        return result.first() is not None

    async def update(
        self,
        scope: Scope,
        row_id: UUID,
        expected_version: Optional[int],
        values: dict[str, Any],
        where: Sequence[Any] = (),
    ) -> Optional[dict[str, Any]]:
        """Apply values only when the row is still at expected_version.

        ``None`` skips the version match but still increments. ``where`` adds
        state guards (for example ``status == "pending"``). Returns the
        post-increment record, or None when nothing matched.
        """
        clauses = [self.table.id == row_id, *self._scope_clauses(scope), *where]
        if expected_version is not None:
            clauses.append(self.table.version == expected_version)
        result = await self.session.execute(
            update(self.table)
            .where(*clauses)
            .values(**values, version=self.table.version + 1, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return await self.get(scope, row_id)

    async def touch(
        self,
        scope: Scope,
        row_id: UUID,
        values: dict[str, Any],
        where: Sequence[Any] = (),
    ) -> bool:
        """Write bookkeeping columns without a version bump."""
        result = await self.session.execute(
            update(self.table)
            .where(self.table.id == row_id, *self._scope_clauses(scope), *where)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def delete(self, scope: Scope, row_id: UUID, hard: bool) -> bool:
        """Soft or hard delete a live row. Returns False when nothing matched."""
        clauses = [self.table.id == row_id, *self._scope_clauses(scope)]
        if hard:
            statement = delete(self.table).where(*clauses)
        else:
            now = utc_now()
            statement = (
                update(self.table)
                .where(*clauses)
                .values(**self.spec.soft_delete_values, deleted_at=now, updated_at=now)
            )
        result = await self.session.execute(
            statement.execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def max_value(self, scope: Scope, column_name: str) -> Optional[Any]:
        """Highest value of a column among all rows in the scope, deleted included."""
        clauses = [self.table.tenant_id == scope.tenant_id]
        if self.spec.parent is not None and scope.parent_id is not None:
            clauses.append(self.spec.column(self.spec.parent.field) == scope.parent_id)
        return await self.session.scalar(
            select(func.max(self.spec.column(column_name))).where(*clauses)
        )


class AuditEventRepository:
    """Append-only access to the audit trail."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(self, values: dict[str, Any]) -> UUID:
        row = AuditEventTable(**values)
        self.session.add(row)
        await self.session.flush()
        return row.id

    async def latest(self, limit: int, tenant_id: Optional[UUID] = None) -> list[AuditEventTable]:
        """Newest events first, optionally for one tenant."""
        query = select(AuditEventTable)
        if tenant_id is not None:
            query = query.where(AuditEventTable.tenant_id == tenant_id)
        result = await self.session.execute(
            query.order_by(AuditEventTable.event_time.desc(), AuditEventTable.id.desc()).limit(limit)
        )
        return list(result.scalars())
