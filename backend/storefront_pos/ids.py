# Overview: Public identifiers for catalog, sale and user rows.

import uuid

PRODUCT_PREFIX = "prod_"
CATEGORY_PREFIX = "cat_"
MANUFACTURER_PREFIX = "man_"
SALE_PREFIX = "sale_"
USER_PREFIX = "user_"

# Reserved rows that products fall back to when their category or manufacturer goes away
UNCATEGORIZED_UUID = "cat_uncategorized_00000000-0000-0000-0000-000000000000"
UNKNOWN_MANUFACTURER_UUID = "man_unknown_00000000-0000-0000-0000-000000000000"


def generate_id(prefix: str = "id_") -> str:
    """Random external id: the prefix followed by a uuid4."""
    return f"{prefix}{uuid.uuid4()}"
