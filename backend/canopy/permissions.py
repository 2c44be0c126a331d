"""
Role -> module access.

Every user has exactly one role. Each role grants read or write access per
module; write implies read. Routes declare the module they belong to and
the HTTP method decides which level is needed (GET/HEAD read, anything
else write).
"""

MODULE_CULTIVATION = "cultivation"
MODULE_CONVERSION = "conversion"
MODULE_INVENTORY = "inventory"
MODULE_ROOMS = "rooms"
MODULE_TRANSFERS = "transfers"
MODULE_AUDIT = "audit"
MODULE_USERS = "users"

ALL_MODULES = (
    MODULE_CULTIVATION,
    MODULE_CONVERSION,
    MODULE_INVENTORY,
    MODULE_ROOMS,
    MODULE_TRANSFERS,
    MODULE_AUDIT,
    MODULE_USERS,
)

READ = "read"
WRITE = "write"

ROLE_ADMIN = "admin"
ROLE_CULTIVATOR = "cultivator"
ROLE_PROCESSOR = "processor"
ROLE_TRANSPORT = "transport"
ROLE_VIEWER = "viewer"

ROLE_MODULE_ACCESS = {
    ROLE_ADMIN: {module: WRITE for module in ALL_MODULES},
    ROLE_CULTIVATOR: {
        MODULE_CULTIVATION: WRITE,
        MODULE_INVENTORY: WRITE,
        MODULE_ROOMS: WRITE,
        MODULE_CONVERSION: READ,
        MODULE_TRANSFERS: READ,
        MODULE_AUDIT: READ,
    },
    ROLE_PROCESSOR: {
        MODULE_CONVERSION: WRITE,
        MODULE_INVENTORY: WRITE,
        MODULE_CULTIVATION: READ,
        MODULE_ROOMS: READ,
        MODULE_TRANSFERS: READ,
        MODULE_AUDIT: READ,
    },
    ROLE_TRANSPORT: {
        MODULE_TRANSFERS: WRITE,
        MODULE_INVENTORY: READ,
        MODULE_ROOMS: READ,
    },
    ROLE_VIEWER: {module: READ for module in ALL_MODULES if module != MODULE_USERS},
}

ROLES = tuple(ROLE_MODULE_ACCESS.keys())


def has_module_access(role: str, module: str, level: str = READ) -> bool:
    granted = ROLE_MODULE_ACCESS.get(role, {}).get(module)
    if granted is None:
        return False
    if level == READ:
        return True
    return granted == WRITE


def modules_for_role(role: str) -> dict:
    """Module -> access level, as reported by /api/auth/me."""
    return dict(ROLE_MODULE_ACCESS.get(role, {}))
