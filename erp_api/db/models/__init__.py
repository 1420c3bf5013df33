"""
ORM models for the security, catalog, inventory and production domains.

Importing this package ensures model classes are registered with the Base
metadata for Alembic and runtime usage.
"""

from .security import (  # noqa: F401
    Role,
    User,
)
from .catalog import (  # noqa: F401
    Category,
    Product,
    BillOfMaterial,
    BomItem,
)
from .inventory import (  # noqa: F401
    InventoryItem,
    InventoryTransaction,
)
from .production import (  # noqa: F401
    ProductionOrder,
    ProductionStatusEvent,
)
