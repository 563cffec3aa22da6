"""
Branch inventory.

Models:
- Inventory (one stock line per branch / subcategory / type)
- InventoryCodeSequence (per-prefix counter behind PREFIX-NNNN codes)
- InventoryTransfer (inter-branch transfer request with approval state)
"""
