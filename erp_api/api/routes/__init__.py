"""
API route modules.

This package contains subrouters for:
- Auth: register, login, refresh, logout and current user
- Users: user administration
- Catalog: categories, products and bills of materials
- Production: production orders and their lifecycle
- Inventory: items, stock transactions and valuation

Routers are included from erp_api.api.main (under the /api prefix).
"""
