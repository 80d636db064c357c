"""
db.py — Supabase client factory.

The client is built once by the entrypoint from an explicit Settings object
and handed to the loader; nothing here caches it.

Usage:
    from visualclimate_shared.config import load_settings
    from visualclimate_shared.db import create_supabase_client

    client = create_supabase_client(load_settings())
"""

from __future__ import annotations

import structlog
from supabase import Client, create_client

from visualclimate_shared.config import Settings
from visualclimate_shared.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)


def create_supabase_client(settings: Settings) -> Client:
    """
    Return a Supabase client authenticated with the service role key.

    Args:
        settings: Process settings carrying supabase_url and supabase_service_key.

    Raises:
        ConfigurationError: either value is empty.
    """
    missing = settings.missing_store_settings()
    if missing:
        raise ConfigurationError(
            f"{' and '.join(missing)} not set. Set them in .env before running a pipeline."
        )
    client = create_client(settings.supabase_url, settings.supabase_service_key)
    logger.info("supabase_client_created", role="service_role")
    return client
