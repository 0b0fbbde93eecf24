# Overview: The access policy table: which role may perform which action.
# super_admin is granted every action; all other roles are listed explicitly.

from .definitions import PERMISSION_DEFINITIONS


_ALL_CODES = frozenset(perm[0] for perm in PERMISSION_DEFINITIONS)

# Granted to every role. Ownership gates still apply per resource.
_BASELINE = frozenset({
    "VIEW_PRODUCTS",
    "VIEW_REORDER_ALERTS",
    "VIEW_USERS",
    "VIEW_CUSTOMERS",
    "CREATE_CUSTOMER",
    "EDIT_CUSTOMER",
    "LOG_INTERACTIONS",
    "MANAGE_PIPELINE",
    "MANAGE_TASKS",
})

_SALES = frozenset({
    "VIEW_QUOTES",
    "MANAGE_QUOTES",
    "CONVERT_QUOTES",
    "SEND_QUOTES",
    "VIEW_ORDERS",
    "MANAGE_ORDERS",
    "UPLOAD_ATTACHMENTS",
})


DEFAULT_ROLE_PERMISSIONS = {
    "super_admin": _ALL_CODES,
    "inventory_manager": _BASELINE | {
        "MANAGE_PRODUCTS",
        "ADJUST_INVENTORY",
        "IMPORT_INVENTORY",
        "EXPORT_INVENTORY",
    },
    "accountant": _BASELINE | {
        "EXPORT_INVENTORY",
    },
    "sales_rep": _BASELINE | _SALES,
    "CSR": _BASELINE | _SALES,
}

# Roles that skip ownership gates entirely.
OWNERSHIP_BYPASS_ROLES = frozenset({"super_admin"})
