"""Adapters for external collaborators.

All adapters:
- Return typed Pydantic models (never untyped payloads)
- Are deterministic for a given input
- Hold no storage handles
"""

from .catalog import DestinationCatalog, FixtureCatalog
from .oracle import HeuristicOracle, RecommendationOracle

__all__ = [
    "DestinationCatalog",
    "FixtureCatalog",
    "HeuristicOracle",
    "RecommendationOracle",
]
