"""Declarative description of one tenant-scoped resource type.

A ``ResourceSpec`` carries the static allow-lists (searchable columns,
equality filters, sort columns, create and update fields) and the per-type
policies (delete mode, policy gate, parent scoping) that the generic
operation wrapper in ``engine.core`` applies uniformly.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

from sqlalchemy import Column
from sqlalchemy.ext.asyncio import AsyncSession

from compliance_agent.db.base import Base
from compliance_agent.models.enums import DeleteMode, EventCategory


@dataclass(frozen=True)
class Scope:
    """Tenant (and optional parent row) a resource operation is confined to."""

    tenant_id: UUID
    parent_id: Optional[UUID] = None


@dataclass(frozen=True)
class EnumRule:
    """Closed value set for one column plus the audit reason on violation."""

    values: frozenset[str]
    reason: str


@dataclass(frozen=True)
class ParentLink:
    """Column tying a child row to its parent resource."""

    field: str
    resource: str


@dataclass(frozen=True)
class Reference:
    """Optional foreign row that must exist in the same tenant on create."""

    field: str
    resource: str
    same_parent: bool = False


# Produces a value for a server-generated column (document numbers, version numbers).
Generator = Callable[[AsyncSession, Scope], Awaitable[Any]]

# Cross-field check on coerced values; receives (values, creating, scope).
Validator = Callable[[dict[str, Any], bool, Scope], None]

# Extra writes performed inside the create transaction; returns changed field names.
AfterCreate = Callable[[AsyncSession, Scope, Any], Awaitable[list[str]]]


@dataclass
class ResourceSpec:
    """Static description of one resource type."""

    name: str
    table: type[Base]
    required: tuple[str, ...]
    create_fields: tuple[str, ...]
    update_fields: tuple[str, ...]
    search_columns: tuple[str, ...] = ()
    filters: dict[str, Optional[frozenset[str]]] = field(default_factory=dict)
    sort_columns: tuple[str, ...] = ("created_at", "updated_at")
    default_sort: str = "created_at"
    default_descending: bool = True
    enums: dict[str, EnumRule] = field(default_factory=dict)
    natural_key: Optional[str] = None
    duplicate_reason: str = "duplicate"
    delete_mode: DeleteMode = DeleteMode.SOFT
    soft_delete_values: dict[str, Any] = field(default_factory=dict)
    requires_policy: bool = False
    parent: Optional[ParentLink] = None
    references: tuple[Reference, ...] = ()
    audit_name_field: Optional[str] = None
    event_category: EventCategory = EventCategory.DATA
    actor_defaults: dict[str, str] = field(default_factory=dict)
    generated: dict[str, Generator] = field(default_factory=dict)
    validate: Optional[Validator] = None
    after_create: Optional[AfterCreate] = None

    def column(self, name: str) -> Column:
        return self.table.__table__.c[name]

    def sort_column(self, requested: Optional[str]) -> Column:
        """Resolve a client sort key, never leaving the allow-list."""
        if requested in self.sort_columns:
            return self.column(requested)
        return self.column(self.default_sort)

    def identity(self, record: dict[str, Any]) -> dict[str, Any]:
        """Minimal identity returned on idempotent replays."""
        data: dict[str, Any] = {"id": record["id"]}
        if self.natural_key:
            data[self.natural_key] = record[self.natural_key]
        return data

    def target_name(self, row: Any) -> Optional[str]:
        """Non-sensitive display name for audit rows."""
        if self.audit_name_field is None or row is None:
            return None
        return getattr(row, self.audit_name_field, None)


class ResourceRegistry:
    """Name-indexed collection of resource specs."""

    def __init__(self) -> None:
        self._specs: dict[str, ResourceSpec] = {}

    def register(self, spec: ResourceSpec) -> ResourceSpec:
        if spec.name in self._specs:
            raise ValueError(f"Resource {spec.name} already registered")
        self._specs[spec.name] = spec
        return spec

    def get(self, name: str) -> ResourceSpec:
        return self._specs[name]
