"""
Fund price ingestion.

Fetches current net asset values for a configured set of funds from several
providers, falls back to the previously stored value when all providers
fail, and atomically rewrites the JSON price file a static site reads.
"""

__version__ = "1.0.0"
