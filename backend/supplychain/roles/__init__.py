# Overview: Participant role package.
# Re-exports all public APIs for backwards-compatible imports.

from .definitions import (
    ROLE_ADMIN,
    ROLE_MANUFACTURER,
    ROLE_DISTRIBUTOR,
    ROLE_RETAILER,
    ROLE_DEFINITIONS,
)
from .helpers import (
    get_all_role_codes,
    get_role_definition,
    validate_role_code,
    is_admin_role,
)

__all__ = [
    "ROLE_ADMIN",
    "ROLE_MANUFACTURER",
    "ROLE_DISTRIBUTOR",
    "ROLE_RETAILER",
    "ROLE_DEFINITIONS",
    "get_all_role_codes",
    "get_role_definition",
    "validate_role_code",
    "is_admin_role",
]
