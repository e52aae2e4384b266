from __future__ import annotations

from .cherokee import CHEROKEE

__all__ = ["CHEROKEE"]
