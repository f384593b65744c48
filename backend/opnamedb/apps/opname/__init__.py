"""
Opname module.

Stock counts: scheduling, staff submission, edit requests, admin review,
direct counts and the overdue-schedule sweep. Counted totals are split
back onto batches by `distribution`.
"""

from . import models  # noqa: F401
