from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Tenant tables are declared against this placeholder and bound per statement
# to the tenant's schema through schema_translate_map.
TENANT_SCHEMA = "tenant"

_JSON = JSON().with_variant(JSONB, "postgresql")
# SQLite only autoincrements INTEGER primary keys.
_BIGINT_PK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


class Plan(Base):
    __tablename__ = "plans"

    # Commercial bundle of modules and permissions an institution subscribes to.
    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Institution(Base):
    __tablename__ = "institutions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    # School category used to hide modules built for other institution types.
    type: Mapped[str | None] = mapped_column(String, nullable=True)
    plan_id: Mapped[str | None] = mapped_column(String, ForeignKey("plans.id"), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Module(Base):
    __tablename__ = "modules"
    __table_args__ = (Index("ix_modules_sort", "sort_order", "name"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # Self-reference forming a forest of navigational groups.
    parent_id: Mapped[str | None] = mapped_column(String, ForeignKey("modules.id"), nullable=True, index=True)
    slug: Mapped[str] = mapped_column(String)
    name: Mapped[str] = mapped_column(String)
    icon: Mapped[str | None] = mapped_column(String, nullable=True)
    route_name: Mapped[str | None] = mapped_column(String, nullable=True)
    route_title: Mapped[str | None] = mapped_column(String, nullable=True)
    # Null means "not specified"; only an explicit false hides the module.
    route_active: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    institution_type: Mapped[str] = mapped_column(String, default="all", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Feature(Base):
    __tablename__ = "features"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    module_id: Mapped[str] = mapped_column(String, ForeignKey("modules.id"), index=True)
    slug: Mapped[str] = mapped_column(String)
    name: Mapped[str] = mapped_column(String)
    icon: Mapped[str | None] = mapped_column(String, nullable=True)
    route_name: Mapped[str | None] = mapped_column(String, nullable=True)
    route_title: Mapped[str | None] = mapped_column(String, nullable=True)
    route_active: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Permission(Base):
    __tablename__ = "permissions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # Stable capability identifier shared by roles, grants, and plans.
    key: Mapped[str] = mapped_column(String, unique=True, index=True)
    feature_id: Mapped[str | None] = mapped_column(String, ForeignKey("features.id"), nullable=True, index=True)
    action: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    # Optional route override when a permission maps to a more specific screen.
    route_name: Mapped[str | None] = mapped_column(String, nullable=True)
    route_title: Mapped[str | None] = mapped_column(String, nullable=True)
    route_active: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class PlanModule(Base):
    __tablename__ = "plan_modules"

    plan_id: Mapped[str] = mapped_column(String, ForeignKey("plans.id"), primary_key=True)
    module_id: Mapped[str] = mapped_column(String, ForeignKey("modules.id"), primary_key=True)


class PlanPermission(Base):
    __tablename__ = "plan_permissions"

    plan_id: Mapped[str] = mapped_column(String, ForeignKey("plans.id"), primary_key=True)
    permission_id: Mapped[str] = mapped_column(String, ForeignKey("permissions.id"), primary_key=True)


class User(Base):
    __tablename__ = "users"
    __table_args__ = {"schema": TENANT_SCHEMA}

    id: Mapped[str] = mapped_column(String, primary_key=True)
    institution_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Role(Base):
    __tablename__ = "roles"
    __table_args__ = {"schema": TENANT_SCHEMA}

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    slug: Mapped[str | None] = mapped_column(String, nullable=True)
    # Explicit capability flag; admin status is never inferred from the role name.
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = {"schema": TENANT_SCHEMA}

    user_id: Mapped[str] = mapped_column(String, ForeignKey(f"{TENANT_SCHEMA}.users.id"), primary_key=True)
    role_id: Mapped[str] = mapped_column(String, ForeignKey(f"{TENANT_SCHEMA}.roles.id"), primary_key=True)


class RolePermission(Base):
    __tablename__ = "role_permissions"
    __table_args__ = {"schema": TENANT_SCHEMA}

    role_id: Mapped[str] = mapped_column(String, ForeignKey(f"{TENANT_SCHEMA}.roles.id"), primary_key=True)
    # References the shared permission catalog, which lives outside the tenant schema.
    permission_id: Mapped[str] = mapped_column(String, primary_key=True)


class UserPermission(Base):
    __tablename__ = "user_permissions"
    __table_args__ = (
        UniqueConstraint("user_id", "permission_key", name="uq_user_permissions_key"),
        {"schema": TENANT_SCHEMA},
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, ForeignKey(f"{TENANT_SCHEMA}.users.id"), index=True)
    permission_key: Mapped[str] = mapped_column(String)


class AdminPermission(Base):
    __tablename__ = "admin_permissions"
    __table_args__ = (
        UniqueConstraint("user_id", "permission_key", name="uq_admin_permissions_key"),
        {"schema": TENANT_SCHEMA},
    )

    # Grants delegated when the institution admin account is created.
    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, ForeignKey(f"{TENANT_SCHEMA}.users.id"), index=True)
    permission_key: Mapped[str] = mapped_column(String)
    granted_by: Mapped[str | None] = mapped_column(String, nullable=True)


class AcademicSession(Base):
    __tablename__ = "academic_sessions"
    __table_args__ = (
        Index("ix_academic_sessions_current", "institution_id", "is_current"),
        {"schema": TENANT_SCHEMA},
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    institution_id: Mapped[str] = mapped_column(String)
    name: Mapped[str] = mapped_column(String)
    # At most one current session per institution; not enforced by the database.
    is_current: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_user_created", "user_id", "created_at"),
        Index("ix_audit_logs_institution_created", "institution_id", "created_at"),
        {"schema": TENANT_SCHEMA},
    )

    # Append-only; rows are never updated or deleted by this service.
    id: Mapped[int] = mapped_column(_BIGINT_PK, primary_key=True, autoincrement=True)
    user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    institution_id: Mapped[str | None] = mapped_column(String, nullable=True)
    action: Mapped[str] = mapped_column(String)
    meta: Mapped[dict[str, Any] | None] = mapped_column(_JSON, default=dict)
    ip: Mapped[str | None] = mapped_column(String, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
