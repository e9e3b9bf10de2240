"""
Error taxonomy shared by every aggregation.

  - StorageError: a query or write against the row store failed. Raised once at
    the storage boundary and propagated unchanged (no local retry).
  - NotFoundError: an expected-absent entity (e.g. no business profile yet).
    Aggregations usually turn this into a zeroed result instead of raising.
  - PartialDataError: some sources of one aggregation failed while others
    succeeded. The whole aggregation fails rather than reporting misleading
    figures built from a zero stand-in.
  - CriterionError: an achievement criterion is unknown or malformed.
"""


class TradeDeskError(Exception):
    """Base class for domain errors."""


class StorageError(TradeDeskError):
    def __init__(self, source: str, message: str | None = None):
        self.source = source
        super().__init__(message or f"Storage query failed: {source}")


class NotFoundError(TradeDeskError):
    def __init__(self, entity: str, key: str | None = None):
        self.entity = entity
        self.key = key
        detail = f"{entity} not found" if key is None else f"{entity} {key} not found"
        super().__init__(detail)


class PartialDataError(TradeDeskError):
    def __init__(self, failed_sources: list[str], succeeded_sources: list[str]):
        self.failed_sources = failed_sources
        self.succeeded_sources = succeeded_sources
        super().__init__(
            f"Aggregation aborted: {', '.join(failed_sources)} failed "
            f"while {', '.join(succeeded_sources)} succeeded"
        )


class CriterionError(TradeDeskError):
    def __init__(self, code: str, reason: str):
        self.code = code
        self.reason = reason
        super().__init__(f"Achievement {code}: {reason}")
