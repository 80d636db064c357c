"""
exceptions.py — Error taxonomy for the ingestion pipeline.

Fatal (abort the run, nonzero exit):
    ConfigurationError, RegistryError, SourceFetchError

Row-level (row dropped, counted in aggregate only):
    ParseError, ValidationError

Batch-level (batch skipped, run continues):
    PersistenceError
"""


class ClimateDataError(Exception):
    """Base class for every pipeline error."""


class ConfigurationError(ClimateDataError):
    """Store credentials or another required setting is missing."""


class RegistryError(ClimateDataError):
    """The country registry could not be read from the store."""


class SourceFetchError(ClimateDataError):
    """
    An external source could not be fetched or returned an unusable payload.

    Covers HTTP errors, malformed JSON envelopes, and bulk files missing
    their required header columns.
    """


class ParseError(ClimateDataError):
    """A row's value or year is missing or not a finite number."""


class ValidationError(ClimateDataError):
    """A row's country is not in the registry or its year is out of window."""


class PersistenceError(ClimateDataError):
    """The store rejected one upsert batch."""
