"""
Energy aggregation engine for room-level electricity reporting
"""
from .aggregator import Aggregator
from .bucket_planner import BucketPlanner, Period
from .config_loader import ConfigLoader, EngineSettings
from .engine import EnergyEngine
from .errors import (EnergyEngineError, ErrorKind, InvalidDate, InvalidPeriod,
                     InvalidStrategy, QueryCancelled, QueryTimeout,
                     SourceUnavailable)
from .integrator import CounterDeltaStrategy, TrapezoidalStrategy, get_strategy
from .meter_directory import DirectoryProvider, MeterDirectory
from .models import Bucket, BucketResult, EnergyDelta, EnergyReport, Meter, QualityStats
from .quality import QualityReporter
from .reading_source import FrameReadingSource, ReadingSource

__all__ = [
    "Aggregator",
    "BucketPlanner",
    "Period",
    "ConfigLoader",
    "EngineSettings",
    "EnergyEngine",
    "EnergyEngineError",
    "ErrorKind",
    "InvalidDate",
    "InvalidPeriod",
    "InvalidStrategy",
    "QueryCancelled",
    "QueryTimeout",
    "SourceUnavailable",
    "CounterDeltaStrategy",
    "TrapezoidalStrategy",
    "get_strategy",
    "DirectoryProvider",
    "MeterDirectory",
    "Bucket",
    "BucketResult",
    "EnergyDelta",
    "EnergyReport",
    "Meter",
    "QualityStats",
    "QualityReporter",
    "FrameReadingSource",
    "ReadingSource",
]
