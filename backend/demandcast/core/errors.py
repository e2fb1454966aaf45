r"""backend\demandcast\core\errors.py

Exception taxonomy shared by the forecasting, reorder and anomaly engines.

``InsufficientDataError`` derives from ``ValueError`` so callers that already
translate ``ValueError`` into a 400 response keep working.  ``ComputationError``
signals numeric corruption (NaN/Infinity) and must never be swallowed.
"""

from __future__ import annotations


class ForecastingError(Exception):
    """Base class for engine failures."""


class InsufficientDataError(ForecastingError, ValueError):
    """A statistic needs data the input does not provide."""


class ComputationError(ForecastingError, ArithmeticError):
    """A computation produced a non-finite value."""


class StoreNotFoundError(ForecastingError, LookupError):
    """The requested store does not exist in the backing store."""

    def __init__(self, store_id: str) -> None:
        super().__init__(f"Store '{store_id}' not found")
        self.store_id = store_id


class RecordNotFoundError(ForecastingError, LookupError):
    """A forecast, reorder suggestion or anomaly could not be located."""

    def __init__(self, kind: str, record_id: str) -> None:
        super().__init__(f"{kind} '{record_id}' not found")
        self.kind = kind
        self.record_id = record_id
