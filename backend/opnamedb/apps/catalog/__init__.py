"""
Catalog module.

Read-only product and category lookups used by stock counting and sales.
"""

from . import models  # noqa: F401
