"""Detector suite - pure analyses over price series."""

from stock_livedata.detector.changepoint import ChangepointConfig, changepoints
from stock_livedata.detector.jumps import jumps_in_series
from stock_livedata.detector.models import JumpEvent, MalformedInputError, RecurringEvent
from stock_livedata.detector.outliers import (
    cluster_seasonal_data,
    distance_matrix,
    dtw_distance,
    is_outlier,
    outliers,
)
from stock_livedata.detector.seasonality import (
    recurring_events_in_series,
    seasonality,
    smooth_series,
    split_series_into_seasons,
)
from stock_livedata.detector.trend import increasing_slope, slope

__all__ = [
    "ChangepointConfig",
    "JumpEvent",
    "MalformedInputError",
    "RecurringEvent",
    "changepoints",
    "cluster_seasonal_data",
    "distance_matrix",
    "dtw_distance",
    "increasing_slope",
    "is_outlier",
    "jumps_in_series",
    "outliers",
    "recurring_events_in_series",
    "seasonality",
    "slope",
    "smooth_series",
    "split_series_into_seasons",
]
