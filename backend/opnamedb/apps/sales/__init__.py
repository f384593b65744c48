"""
Sales module.

Records sales and deducts their stock through FIFO allocation.
"""

from . import models  # noqa: F401
