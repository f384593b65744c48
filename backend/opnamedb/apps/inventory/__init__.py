"""
Inventory module.

Batch ledger (per-batch stock with expiry) and FIFO allocation.
"""

from . import models  # noqa: F401
