"""Outlier and cluster analysis over collections of aligned series.

Series (typically one per trading session) are compared through a pairwise
distance matrix and grouped with DBSCAN; series left as noise are the
outliers. A median-absolute-deviation check covers the single new series
versus history case.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Literal

import numpy as np
from sklearn.cluster import DBSCAN

from stock_livedata.detector.models import MalformedInputError

logger = logging.getLogger(__name__)

Metric = Literal["euclidean", "dtw"]

DEFAULT_EPS = 0.5
DEFAULT_MIN_SAMPLES = 2
DEFAULT_DTW_WINDOW = 2
MAD_SCALE = 1.4826
MAX_MODIFIED_Z = 7.0


def _standardize(series: Sequence[Sequence[float]]) -> list[np.ndarray]:
    """Scale all series with one global mean and deviation."""
    arrays = [np.asarray(s, dtype=float) for s in series]
    flat = np.concatenate(arrays) if arrays else np.empty(0)
    if flat.size == 0:
        return arrays
    std = float(flat.std())
    mean = float(flat.mean())
    if std == 0.0:
        return [a - mean for a in arrays]
    return [(a - mean) / std for a in arrays]


def dtw_distance(a: Sequence[float], b: Sequence[float], window: int | None = None) -> float:
    """Dynamic time warping distance with an optional Sakoe-Chiba band.

    The accumulated absolute cost is divided by ``len(a) + len(b)`` so
    series of different lengths stay comparable.
    """
    x = np.asarray(a, dtype=float)
    y = np.asarray(b, dtype=float)
    n, m = len(x), len(y)
    if n == 0 or m == 0:
        return 0.0 if n == m else float("inf")
    w = max(window if window is not None else max(n, m), abs(n - m))

    acc = np.full((n + 1, m + 1), np.inf)
    acc[0, 0] = 0.0
    for i in range(1, n + 1):
        lo = max(1, i - w)
        hi = min(m, i + w)
        for j in range(lo, hi + 1):
            cost = abs(x[i - 1] - y[j - 1])
            acc[i, j] = cost + min(acc[i - 1, j], acc[i, j - 1], acc[i - 1, j - 1])
    return float(acc[n, m] / (n + m))


def distance_matrix(
    series: Sequence[Sequence[float]],
    metric: Metric = "euclidean",
    window: int | None = None,
) -> np.ndarray:
    """Pairwise distances between globally standardized series.

    Euclidean distances are root-mean-square over the aligned samples and
    require equal lengths.

    Raises:
        MalformedInputError: On unequal lengths with the Euclidean metric.
    """
    arrays = _standardize(series)
    k = len(arrays)
    out = np.zeros((k, k))
    if metric == "euclidean":
        lengths = {len(a) for a in arrays}
        if len(lengths) > 1:
            raise MalformedInputError(f"euclidean distance needs equal lengths, got {sorted(lengths)}")
        if k and arrays[0].size:
            stacked = np.vstack(arrays)
            diff = stacked[:, None, :] - stacked[None, :, :]
            out = np.sqrt((diff**2).mean(axis=2))
        return out
    if metric == "dtw":
        for i in range(k):
            for j in range(i + 1, k):
                out[i, j] = out[j, i] = dtw_distance(arrays[i], arrays[j], window)
        return out
    raise ValueError(f"Unknown metric: {metric}")


def _dbscan_labels(matrix: np.ndarray, eps: float, min_samples: int) -> list[int]:
    labels = DBSCAN(eps=eps, min_samples=min_samples, metric="precomputed").fit_predict(matrix)
    return [int(label) for label in labels]


def outliers(
    series: Sequence[Sequence[float]],
    metric: Metric = "euclidean",
    *,
    eps: float = DEFAULT_EPS,
    min_samples: int = DEFAULT_MIN_SAMPLES,
    window: int | None = None,
) -> list[int]:
    """Indices of series that belong to no dense cluster."""
    if len(series) < 2:
        return []
    labels = _dbscan_labels(distance_matrix(series, metric, window), eps, min_samples)
    flagged = [i for i, label in enumerate(labels) if label == -1]
    logger.debug("Outlier series: %s of %d", flagged, len(series))
    return flagged


def cluster_seasonal_data(
    series: Sequence[Sequence[float]],
    *,
    eps: float = DEFAULT_EPS,
    min_samples: int = DEFAULT_MIN_SAMPLES,
    window: int = DEFAULT_DTW_WINDOW,
) -> list[int]:
    """Cluster seasons by shape using DTW; -1 marks noise."""
    if not series:
        return []
    if len(series) == 1:
        return [-1] if min_samples > 1 else [0]
    return _dbscan_labels(distance_matrix(series, "dtw", window), eps, min_samples)


def is_outlier(
    historical: Sequence[Sequence[float]],
    new: Sequence[float],
    sensitivity: float = 0.5,
) -> bool:
    """Check whether a new series deviates from its history.

    The new series is appended to the historical set and every sample is
    scored with the modified z-score ``|x - median| / (1.4826 * MAD)`` taken
    across series. The new series is an outlier when any of its samples
    exceeds ``7 * (1 - sensitivity)`` (3.5 at the default sensitivity).

    Raises:
        MalformedInputError: If the series differ in length.
    """
    if not 0.0 < sensitivity < 1.0:
        raise ValueError("sensitivity must be in (0, 1)")
    if not new or len(historical) < 2:
        return False
    lengths = {len(s) for s in historical} | {len(new)}
    if len(lengths) > 1:
        raise MalformedInputError(f"series must have equal lengths, got {sorted(lengths)}")

    stacked = np.vstack([np.asarray(s, dtype=float) for s in historical] + [np.asarray(new, dtype=float)])
    median = np.median(stacked, axis=0)
    deviation = np.abs(stacked - median)
    mad = MAD_SCALE * np.median(deviation, axis=0)
    floor = 1e-9 * np.maximum(1.0, np.abs(median))
    scores = deviation / np.maximum(mad, floor)
    threshold = MAX_MODIFIED_Z * (1.0 - sensitivity)
    flagged = bool(np.any(scores[-1] > threshold))
    logger.debug("New series max score %.2f (threshold %.2f)", float(scores[-1].max()), threshold)
    return flagged
