"""
Audit module.

Append-only record of opname transitions and stock write-backs.
"""

from . import models  # noqa: F401
