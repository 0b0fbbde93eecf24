# Overview: All permission (action) definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "VIEW_PRODUCTS",
        "View Products",
        "View products and current stock",
        PermissionCategory.INVENTORY,
    ),
    (
        "MANAGE_PRODUCTS",
        "Manage Products",
        "Create and edit products (stock excluded)",
        PermissionCategory.INVENTORY,
    ),
    (
        "ADJUST_INVENTORY",
        "Adjust Inventory",
        "Apply signed stock adjustments",
        PermissionCategory.INVENTORY,
    ),
    (
        "VIEW_INVENTORY_HISTORY",
        "View Adjustment History",
        "View per-product stock adjustment history",
        PermissionCategory.INVENTORY,
    ),
    (
        "VIEW_REORDER_ALERTS",
        "View Reorder Alerts",
        "View products below their reorder threshold",
        PermissionCategory.INVENTORY,
    ),
    (
        "EXPORT_INVENTORY",
        "Export Inventory",
        "Download the product list as CSV",
        PermissionCategory.INVENTORY,
    ),
    (
        "IMPORT_INVENTORY",
        "Import Inventory",
        "Upsert products from a CSV file",
        PermissionCategory.INVENTORY,
    ),
    (
        "VIEW_IMPORT_LOGS",
        "View Import Logs",
        "View CSV import batch summaries",
        PermissionCategory.INVENTORY,
    ),
]


# -- CRM --

CRM_PERMISSIONS = [
    (
        "VIEW_CUSTOMERS",
        "View Customers",
        "View and search assigned customers",
        PermissionCategory.CRM,
    ),
    (
        "CREATE_CUSTOMER",
        "Create Customer",
        "Create customers (creator is auto-assigned)",
        PermissionCategory.CRM,
    ),
    (
        "EDIT_CUSTOMER",
        "Edit Customer",
        "Edit assigned customers",
        PermissionCategory.CRM,
    ),
    (
        "DELETE_CUSTOMER",
        "Delete Customer",
        "Delete a customer with its logs, pipeline, assignments and tasks",
        PermissionCategory.CRM,
    ),
    (
        "ASSIGN_CUSTOMERS",
        "Assign Customers",
        "Replace or remove the users assigned to a customer",
        PermissionCategory.CRM,
    ),
    (
        "VIEW_CRM_LOGS",
        "View CRM Logs",
        "View the system audit trail of a customer",
        PermissionCategory.CRM,
    ),
    (
        "LOG_INTERACTIONS",
        "Log Interactions",
        "View and record calls, emails and meetings",
        PermissionCategory.CRM,
    ),
    (
        "MANAGE_PIPELINE",
        "Manage Pipeline",
        "View and append pipeline stages",
        PermissionCategory.CRM,
    ),
    (
        "MANAGE_TASKS",
        "Manage Tasks",
        "Create, complete and reopen customer tasks",
        PermissionCategory.CRM,
    ),
]


# -- SALES --

SALES_PERMISSIONS = [
    (
        "VIEW_QUOTES",
        "View Quotes",
        "View own quotes",
        PermissionCategory.SALES,
    ),
    (
        "MANAGE_QUOTES",
        "Manage Quotes",
        "Create and edit quotes",
        PermissionCategory.SALES,
    ),
    (
        "CONVERT_QUOTES",
        "Convert Quotes",
        "Convert a quote into an order",
        PermissionCategory.SALES,
    ),
    (
        "SEND_QUOTES",
        "Send Quotes",
        "Email a quote summary to the customer",
        PermissionCategory.SALES,
    ),
    (
        "VIEW_ORDERS",
        "View Orders",
        "View own orders",
        PermissionCategory.SALES,
    ),
    (
        "MANAGE_ORDERS",
        "Manage Orders",
        "Update order status and shipping",
        PermissionCategory.SALES,
    ),
    (
        "UPLOAD_ATTACHMENTS",
        "Upload Attachments",
        "Attach files to quotes and orders",
        PermissionCategory.SALES,
    ),
]


# -- USERS --

USER_PERMISSIONS = [
    (
        "VIEW_USERS",
        "View Users",
        "View the staff directory",
        PermissionCategory.USERS,
    ),
    (
        "MANAGE_USERS",
        "Manage Users",
        "Create, edit, deactivate and delete user accounts",
        PermissionCategory.USERS,
    ),
]


PERMISSION_DEFINITIONS = (
    INVENTORY_PERMISSIONS
    + CRM_PERMISSIONS
    + SALES_PERMISSIONS
    + USER_PERMISSIONS
)
