from __future__ import annotations


class EduGateError(Exception):
    """Base error for edugate."""


class InvalidSchemaNameError(EduGateError):
    """Tenant schema name is missing, malformed, or names a shared partition."""


class ModuleGraphCycleError(EduGateError):
    """Module parent pointers form a cycle; the plan catalog is misconfigured."""

    def __init__(self, module_ids: list[str]) -> None:
        self.module_ids = module_ids
        super().__init__(f"Module parent cycle detected: {' -> '.join(module_ids)}")
