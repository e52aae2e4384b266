from __future__ import annotations

from .engine import TransformationEngine, TransformResult
from .gate import build_output, deduplicate_by
from .transformers import TransformContext

__all__ = ["TransformContext", "TransformResult", "TransformationEngine", "build_output", "deduplicate_by"]
