"""
Vaultkeep - password-protected, deduplicating local backup vault.

Snapshot once, store each distinct content once, restore anything.
"""

import logging
from importlib.metadata import version as _version

__version__ = _version("vaultkeep")

logging.getLogger("vaultkeep").addHandler(logging.NullHandler())
