# Overview: All participant role definitions.
# Each role is defined as: (code, name, description, is_custodial)


ROLE_ADMIN = "ADMIN"
ROLE_MANUFACTURER = "MANUFACTURER"
ROLE_DISTRIBUTOR = "DISTRIBUTOR"
ROLE_RETAILER = "RETAILER"


ROLE_DEFINITIONS = [
    (
        ROLE_ADMIN,
        "Admin",
        "Grant and revoke roles, freeze and unfreeze addresses, resolve returns",
        False,
    ),
    (
        ROLE_MANUFACTURER,
        "Manufacturer",
        "Create batches and receive payment for them",
        True,
    ),
    (
        ROLE_DISTRIBUTOR,
        "Distributor",
        "Buy batches from manufacturers and resell them to retailers",
        True,
    ),
    (
        ROLE_RETAILER,
        "Retailer",
        "Buy batches from distributors and confirm receipt",
        True,
    ),
]

