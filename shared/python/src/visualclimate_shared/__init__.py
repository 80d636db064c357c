"""
visualclimate_shared — shared configuration, constants, and row models for the
visualclimate data platform.

Usage:
    from visualclimate_shared.config import load_settings
    from visualclimate_shared.db import create_supabase_client
    from visualclimate_shared.models.observations import Observation, Indicator
    from visualclimate_shared.geo import normalize_iso3
    from visualclimate_shared.constants import CLIMATE_CLASS_CODE, YEAR_MIN, YEAR_MAX
"""

__version__ = "0.1.0"
