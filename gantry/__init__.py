"""Gantry Python package.

Public API:
  - import from `gantry.api` (preferred) or `import gantry` (re-export)
"""

from __future__ import annotations

from .api import *  # noqa: F401,F403
from . import api as _api

__all__ = list(_api.__all__)

__version__ = "0.1.0"
