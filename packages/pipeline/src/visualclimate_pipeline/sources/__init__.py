"""
visualclimate_pipeline.sources — data source adapters.

Each source wraps one external data provider:
  WorldBankSource          — World Bank Indicators API (paged JSON)
  ClimateWatchSource       — Climate Watch historical emissions (grouped JSON)
  ClimateTraceSource       — Climate TRACE v6 country emissions (one request per year)
  ClimateTraceSectorSource — Climate TRACE v7 sector rankings (paged JSON)
  OwidSource               — Our World in Data bulk CSVs (energy, CO2)
  NdGainSource             — ND-GAIN wide CSVs staged on local disk
"""

from visualclimate_pipeline.sources.climatetrace import ClimateTraceSectorSource, ClimateTraceSource
from visualclimate_pipeline.sources.climatewatch import ClimateWatchSource
from visualclimate_pipeline.sources.ndgain import NdGainSource
from visualclimate_pipeline.sources.owid import OwidSource
from visualclimate_pipeline.sources.worldbank import WorldBankSource

__all__ = [
    "WorldBankSource",
    "ClimateWatchSource",
    "ClimateTraceSource",
    "ClimateTraceSectorSource",
    "OwidSource",
    "NdGainSource",
]
