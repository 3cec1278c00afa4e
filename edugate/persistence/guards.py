from __future__ import annotations

import re
from typing import Any

from edugate.core.errors import InvalidSchemaNameError
from edugate.domain.models import TENANT_SCHEMA


# Unquoted Postgres identifier, at most 63 bytes.
_SCHEMA_NAME_RE = re.compile(r"^[a-z_][a-z0-9_]{0,62}$")
# Shared partitions never hold tenant data, even as a fallback.
_SHARED_SCHEMAS = frozenset({"public", "information_schema", "pg_catalog", "pg_toast"})


def validate_schema_name(schema_name: str | None) -> str:
    # Normalize and validate a tenant schema identifier before it reaches SQL.
    candidate = (schema_name or "").strip()
    if not candidate:
        raise InvalidSchemaNameError("Tenant schema name is required")
    if not _SCHEMA_NAME_RE.match(candidate):
        raise InvalidSchemaNameError(f"Invalid tenant schema name: {candidate!r}")
    if candidate in _SHARED_SCHEMAS or candidate.startswith("pg_"):
        raise InvalidSchemaNameError(f"Shared schema is not a tenant partition: {candidate!r}")
    return candidate


def tenant_options(schema_name: str | None) -> dict[str, Any]:
    # Bind tenant tables to the caller's validated schema for a single statement.
    return {"schema_translate_map": {TENANT_SCHEMA: validate_schema_name(schema_name)}}
