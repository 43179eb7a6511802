"""Entity type registry and the default grievance-portal catalog."""

import logging
from functools import partial
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from .dependency_graph import DependencyGraph
from ..errors import ConfigurationError
from ..models.entity import EntityTypeSpec, EnumDomain, ForeignKey, RawRecord

logger = logging.getLogger(__name__)


class EntityCatalog:
    """
    Registry of entity type specs.

    Specs are registered once at start-up. The dependency order is
    computed lazily on first use and cached; registering another spec
    invalidates it.
    """

    def __init__(self, specs: Optional[Iterable[EntityTypeSpec]] = None):
        self._specs: Dict[str, EntityTypeSpec] = {}
        self._graph: Optional[DependencyGraph] = None
        for spec in specs or ():
            self.register(spec)

    def register(self, spec: EntityTypeSpec) -> None:
        if spec.name in self._specs:
            raise ConfigurationError(f"Entity type already registered: {spec.name}")
        self._specs[spec.name] = spec
        self._graph = None

    def get(self, name: str) -> EntityTypeSpec:
        spec = self._specs.get(name)
        if spec is None:
            raise ConfigurationError(f"Unknown entity type: {name}")
        return spec

    def __contains__(self, name: str) -> bool:
        return name in self._specs

    def __iter__(self) -> Iterator[EntityTypeSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)

    @property
    def names(self) -> List[str]:
        return list(self._specs)

    @property
    def graph(self) -> DependencyGraph:
        """Dependency graph over all registered specs."""
        if self._graph is None:
            self._graph = DependencyGraph(list(self._specs.values()))
        return self._graph

    def ordered(self, only: Optional[Sequence[str]] = None) -> List[EntityTypeSpec]:
        """
        Specs in dependency order.

        Args:
            only: Restrict to these types plus everything they depend on
        """
        if only:
            return self.graph.closure(only)
        return self.graph.order()

    def table_for(self, name: str) -> str:
        return self.get(name).target_table


def blank_to_null(fields: Sequence[str], record: RawRecord) -> RawRecord:
    """Turn empty-string identifiers into nulls."""
    for name in fields:
        if record.get(name) == "":
            record[name] = None
    return record


def prepare_employee(record: RawRecord) -> RawRecord:
    """Fill ``id`` and ``emp_id`` from the legacy employee_uuid and employee_id fields."""
    record = blank_to_null(("id",), record)
    if not record.get("id") and record.get("employee_uuid"):
        record["id"] = record["employee_uuid"]
    if record.get("employee_id") and not record.get("emp_id"):
        record["emp_id"] = record["employee_id"]
    return record


ISSUE_STATUS = EnumDomain(frozenset({"open", "in_progress", "resolved", "closed"}), "open")
ISSUE_PRIORITY = EnumDomain(frozenset({"low", "medium", "high", "critical"}), "medium")
FEEDBACK_SENTIMENT = EnumDomain(frozenset({"positive", "neutral", "negative"}), "neutral")


def _issue_child(name: str, columns: Sequence[str], **kwargs) -> EntityTypeSpec:
    return EntityTypeSpec(
        name=name,
        source_collection=name,
        target_table=name,
        columns=tuple(columns),
        references=(ForeignKey("issue_id", "issues"),),
        prepare=partial(blank_to_null, ("id", "issue_id", "employee_uuid")),
        **kwargs
    )


def default_specs() -> List[EntityTypeSpec]:
    """Entity types of the grievance portal, in declaration order."""
    return [
        EntityTypeSpec(
            name="master_cities",
            source_collection="master_cities",
            target_table="master_cities",
            columns=("id", "name", "created_at", "updated_at"),
            required_fields=("id", "name"),
        ),
        EntityTypeSpec(
            name="master_clusters",
            source_collection="master_clusters",
            target_table="master_clusters",
            columns=("id", "name", "city_id", "created_at", "updated_at"),
            references=(ForeignKey("city_id", "master_cities"),),
            required_fields=("id", "name"),
        ),
        EntityTypeSpec(
            name="master_roles",
            source_collection="master_roles",
            target_table="master_roles",
            columns=("id", "name", "created_at", "updated_at"),
        ),
        EntityTypeSpec(
            name="rbac_permissions",
            source_collection="rbac_permissions",
            target_table="rbac_permissions",
            columns=("id", "name", "description", "created_at", "updated_at"),
        ),
        EntityTypeSpec(
            name="rbac_roles",
            source_collection="rbac_roles",
            target_table="rbac_roles",
            columns=("id", "name", "description", "created_at", "updated_at"),
        ),
        EntityTypeSpec(
            name="rbac_role_permissions",
            source_collection="rbac_role_permissions",
            target_table="rbac_role_permissions",
            columns=("id", "role_id", "permission_id", "created_at"),
            references=(
                ForeignKey("role_id", "rbac_roles"),
                ForeignKey("permission_id", "rbac_permissions"),
            ),
        ),
        EntityTypeSpec(
            name="employees",
            source_collection="employees",
            target_table="employees",
            columns=(
                "id", "emp_id", "name", "email", "phone", "user_id", "password",
                "manager", "role", "cluster", "city", "date_of_birth",
                "date_of_joining", "ifsc_code", "account_number", "blood_group",
                "created_at", "updated_at",
            ),
            required_fields=("id", "emp_id", "name", "email"),
            prepare=prepare_employee,
        ),
        EntityTypeSpec(
            name="dashboard_users",
            source_collection="dashboard_users",
            target_table="dashboard_users",
            columns=(
                "id", "name", "email", "employee_id", "password", "role", "manager",
                "cluster", "city", "phone", "user_id", "is_active", "created_by",
                "last_updated_by", "created_at", "updated_at",
            ),
            required_fields=("id", "name", "email", "role"),
            boolean_fields=("is_active",),
            prepare=partial(blank_to_null, ("id", "created_by", "last_updated_by")),
        ),
        EntityTypeSpec(
            name="rbac_user_roles",
            source_collection="rbac_user_roles",
            target_table="rbac_user_roles",
            dependencies=frozenset({"dashboard_users"}),
            columns=("id", "user_id", "role_id", "created_at"),
            references=(ForeignKey("role_id", "rbac_roles"),),
        ),
        EntityTypeSpec(
            name="issues",
            source_collection="issues",
            target_table="issues",
            columns=(
                "id", "employee_uuid", "type_id", "sub_type_id", "description",
                "status", "priority", "assigned_to", "mapped_type_id",
                "mapped_sub_type_id", "mapped_by", "mapped_at", "closed_at",
                "attachments", "attachment_url", "created_at", "updated_at",
            ),
            enums={"status": ISSUE_STATUS, "priority": ISSUE_PRIORITY},
            references=(ForeignKey("employee_uuid", "employees"),),
            required_fields=("id", "employee_uuid", "type_id", "sub_type_id", "description", "status"),
            json_fields=("attachments",),
            prepare=partial(blank_to_null, ("id", "employee_uuid", "assigned_to", "mapped_by")),
        ),
        _issue_child(
            "issue_comments",
            ("id", "issue_id", "employee_uuid", "content", "created_at"),
        ),
        _issue_child(
            "issue_internal_comments",
            ("id", "issue_id", "employee_uuid", "content", "created_at", "updated_at"),
        ),
        _issue_child(
            "issue_audit_trail",
            (
                "id", "issue_id", "employee_uuid", "action", "previous_status",
                "new_status", "details", "created_at",
            ),
            json_fields=("details",),
        ),
        EntityTypeSpec(
            name="issue_notifications",
            source_collection="issue_notifications",
            target_table="issue_notifications",
            columns=("id", "issue_id", "user_id", "content", "is_read", "created_at"),
            references=(ForeignKey("issue_id", "issues"),),
            boolean_fields=("is_read",),
            prepare=partial(blank_to_null, ("id", "issue_id", "user_id")),
        ),
        _issue_child(
            "ticket_feedback",
            (
                "id", "issue_id", "employee_uuid", "feedback_option", "sentiment",
                "city", "cluster", "agent_id", "agent_name", "created_at",
            ),
            enums={"sentiment": FEEDBACK_SENTIMENT},
        ),
        EntityTypeSpec(
            name="dashboard_user_audit_logs",
            source_collection="dashboard_user_audit_logs",
            target_table="dashboard_user_audit_logs",
            dependencies=frozenset({"dashboard_users"}),
            columns=(
                "id", "entity_type", "entity_id", "action", "changes",
                "performed_by", "performed_at",
            ),
            order_by="performed_at",
            json_fields=("changes",),
        ),
        EntityTypeSpec(
            name="master_audit_logs",
            source_collection="master_audit_logs",
            target_table="master_audit_logs",
            dependencies=frozenset({"employees"}),
            columns=(
                "id", "entity_type", "entity_id", "action", "changes",
                "created_by", "created_at",
            ),
            json_fields=("changes",),
        ),
    ]


def default_catalog() -> EntityCatalog:
    return EntityCatalog(default_specs())
