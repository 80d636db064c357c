"""
visualclimate_shared.models — Pydantic models matching the store tables.

All models provide:
  .to_insert_dict() -> dict
"""

from visualclimate_shared.models.observations import Indicator, Observation

__all__ = [
    "Observation",
    "Indicator",
]
