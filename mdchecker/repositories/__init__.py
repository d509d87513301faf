"""
Repositories package

Each repository encapsulates database operations:
- watermark_repository.py: the narrow store contract used by the jobs and the query API
"""

from .watermark_repository import WatermarkRepository, DeepCheckCandidate, PushTarget

__all__ = ["WatermarkRepository", "DeepCheckCandidate", "PushTarget"]
