"""Errors raised by infrastructure clients."""


class StoreError(Exception):
    """
    Durable store or cache operation failed.

    Wraps driver-level exceptions (psycopg2, redis) so callers above the
    client layer never depend on a specific driver's exception types.
    """
