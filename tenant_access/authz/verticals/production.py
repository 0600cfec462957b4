"""Production vertical: projects, tasks, budgets, suppliers and files.

Adds its own catalog and requirement table and runs through the same
AuthorizationFilter as the platform. Nothing here touches the platform
catalog or the tenant resolver.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from tenant_access.authz.catalog import PermissionCatalog
from tenant_access.authz.policy import AuthorizationFilter, Requirement
from tenant_access.models.organization import Role

PROJECT_CREATE = "project:create"
PROJECT_READ = "project:read"
PROJECT_UPDATE = "project:update"
PROJECT_DELETE = "project:delete"
TASK_CREATE = "task:create"
TASK_READ = "task:read"
TASK_UPDATE = "task:update"
TASK_UPDATE_ASSIGNED = "task:update_assigned"
TASK_ASSIGN = "task:assign"
TASK_DELETE = "task:delete"
BUDGET_READ = "budget:read"
BUDGET_MANAGE = "budget:manage"
SUPPLIER_CREATE = "supplier:create"
SUPPLIER_READ = "supplier:read"
SUPPLIER_UPDATE = "supplier:update"
SUPPLIER_DELETE = "supplier:delete"
FILE_UPLOAD = "file:upload"
FILE_READ = "file:read"
FILE_DELETE = "file:delete"

_ALL = (
    PROJECT_CREATE,
    PROJECT_READ,
    PROJECT_UPDATE,
    PROJECT_DELETE,
    TASK_CREATE,
    TASK_READ,
    TASK_UPDATE,
    TASK_UPDATE_ASSIGNED,
    TASK_ASSIGN,
    TASK_DELETE,
    BUDGET_READ,
    BUDGET_MANAGE,
    SUPPLIER_CREATE,
    SUPPLIER_READ,
    SUPPLIER_UPDATE,
    SUPPLIER_DELETE,
    FILE_UPLOAD,
    FILE_READ,
    FILE_DELETE,
)

PRODUCTION_CATALOG = PermissionCatalog.build(
    "production",
    {
        Role.OWNER: _ALL,
        Role.ADMIN: _ALL,
        Role.MANAGER: (
            PROJECT_CREATE,
            PROJECT_READ,
            PROJECT_UPDATE,
            TASK_CREATE,
            TASK_READ,
            TASK_UPDATE,
            TASK_UPDATE_ASSIGNED,
            TASK_ASSIGN,
            BUDGET_READ,
            SUPPLIER_CREATE,
            SUPPLIER_READ,
            SUPPLIER_UPDATE,
            FILE_UPLOAD,
            FILE_READ,
            FILE_DELETE,
        ),
        Role.MEMBER: (
            PROJECT_READ,
            TASK_READ,
            TASK_UPDATE_ASSIGNED,
            SUPPLIER_READ,
            FILE_UPLOAD,
            FILE_READ,
        ),
        Role.VIEWER: (
            PROJECT_READ,
            TASK_READ,
            SUPPLIER_READ,
            FILE_READ,
        ),
    },
)

PRODUCTION_REQUIREMENTS: Mapping[str, Requirement] = MappingProxyType(
    {
        "production.projects.create": Requirement(permissions=(PROJECT_CREATE,)),
        "production.projects.read": Requirement(permissions=(PROJECT_READ,)),
        "production.projects.update": Requirement(permissions=(PROJECT_UPDATE,)),
        "production.projects.delete": Requirement(
            roles=(Role.ADMIN,), permissions=(PROJECT_DELETE,)
        ),
        "production.tasks.create": Requirement(permissions=(TASK_CREATE,)),
        "production.tasks.read": Requirement(permissions=(PROJECT_READ, TASK_READ)),
        "production.tasks.update": Requirement(permissions=(TASK_UPDATE,)),
        "production.tasks.update_assigned": Requirement(
            permissions=(TASK_UPDATE_ASSIGNED,)
        ),
        "production.tasks.assign": Requirement(
            roles=(Role.MANAGER,), permissions=(TASK_ASSIGN,)
        ),
        "production.budget.read": Requirement(permissions=(BUDGET_READ,)),
        "production.budget.manage": Requirement(
            roles=(Role.ADMIN,), permissions=(BUDGET_MANAGE,)
        ),
        "production.suppliers.create": Requirement(permissions=(SUPPLIER_CREATE,)),
        "production.suppliers.read": Requirement(permissions=(SUPPLIER_READ,)),
        "production.suppliers.update": Requirement(permissions=(SUPPLIER_UPDATE,)),
        "production.suppliers.delete": Requirement(permissions=(SUPPLIER_DELETE,)),
        "production.files.upload": Requirement(permissions=(FILE_UPLOAD,)),
        "production.files.read": Requirement(permissions=(FILE_READ,)),
        "production.files.delete": Requirement(permissions=(FILE_DELETE,)),
        "production.permissions.me": Requirement(roles=(Role.VIEWER,)),
    }
)

PRODUCTION_FILTER = AuthorizationFilter(PRODUCTION_CATALOG, PRODUCTION_REQUIREMENTS)
