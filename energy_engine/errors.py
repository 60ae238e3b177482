"""
Error kinds raised by the energy aggregation engine

Every failure carries a machine-readable kind and a human-readable detail so the
transport layer can map it 1:1 to a user-facing response.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Typed outcome kinds exposed to callers"""

    INVALID_PERIOD = "InvalidPeriod"
    INVALID_DATE = "InvalidDate"
    INVALID_STRATEGY = "InvalidStrategy"
    QUERY_TIMEOUT = "QueryTimeout"
    QUERY_CANCELLED = "QueryCancelled"
    SOURCE_UNAVAILABLE = "SourceUnavailable"
    # Not an error: a valid, zero-filled result
    EMPTY_RESULT = "EmptyResult"
    OK = "Ok"


class EnergyEngineError(Exception):
    """Base class for all engine failures"""

    kind: ErrorKind = ErrorKind.SOURCE_UNAVAILABLE

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.detail}"


class InvalidPeriod(EnergyEngineError):
    kind = ErrorKind.INVALID_PERIOD


class InvalidDate(EnergyEngineError):
    kind = ErrorKind.INVALID_DATE


class InvalidStrategy(EnergyEngineError):
    kind = ErrorKind.INVALID_STRATEGY


class QueryTimeout(EnergyEngineError):
    kind = ErrorKind.QUERY_TIMEOUT


class QueryCancelled(EnergyEngineError):
    kind = ErrorKind.QUERY_CANCELLED


class SourceUnavailable(EnergyEngineError):
    kind = ErrorKind.SOURCE_UNAVAILABLE
