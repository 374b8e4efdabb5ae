"""Bayesian online changepoint detection.

Implements the run-length recursion of Adams & MacKay (2007) with a
Normal-Gamma conjugate model (Student-t predictive) and a constant hazard.
A changepoint is reported whenever the most probable run starts later than
the previously accepted one, at the sample where the new regime begins.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from stock_livedata.detector.seasonality import smooth_series

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangepointConfig:
    """Configuration for changepoint detection.

    Attributes:
        hazard: Prior probability of a changepoint at any sample.
        min_segment: Shortest regime (samples) between two changepoints.
        max_run_length: Run lengths beyond this are truncated.
        mu0: Prior mean of the standardized series.
        kappa0: Prior pseudo-observations for the mean.
        alpha0: Prior shape of the precision.
        beta0: Prior rate of the precision.
    """

    hazard: float = 1.0 / 250.0
    min_segment: int = 5
    max_run_length: int = 1000
    mu0: float = 0.0
    kappa0: float = 1.0
    alpha0: float = 1.0
    beta0: float = 1.0


def _student_t_logpdf(
    x: float,
    mu: np.ndarray,
    kappa: np.ndarray,
    alpha: np.ndarray,
    beta: np.ndarray,
    lgamma_ratio: np.ndarray,
) -> np.ndarray:
    nu = 2.0 * alpha
    scale2 = beta * (kappa + 1.0) / (alpha * kappa)
    return (
        lgamma_ratio
        - 0.5 * np.log(nu * math.pi * scale2)
        - (alpha + 0.5) * np.log1p((x - mu) ** 2 / (nu * scale2))
    )


def changepoints(
    series: Sequence[float],
    smooth: int = 0,
    config: ChangepointConfig | None = None,
) -> list[int]:
    """Locate structural breaks in a series.

    Args:
        series: Samples, oldest first.
        smooth: When > 1, block-average every ``smooth`` samples before
            detection; reported indices are mapped back onto ``series``.
        config: Detector parameters.

    Returns:
        Ascending indices where a new regime starts.
    """
    cfg = config or ChangepointConfig()
    step = smooth if smooth > 1 else 1
    values = np.asarray(smooth_series(series, step) if step > 1 else series, dtype=float)
    if values.ndim != 1 or len(values) < 2 * cfg.min_segment or not np.all(np.isfinite(values)):
        return []

    std = float(values.std())
    if std == 0.0:
        return []
    x = (values - values.mean()) / std

    max_run = cfg.max_run_length
    # Index j of the parameter arrays holds the posterior after j observations,
    # so lgamma(alpha + 1/2) - lgamma(alpha) depends on j only.
    alphas = cfg.alpha0 + 0.5 * np.arange(max_run + 1)
    lgamma_ratio = np.array([math.lgamma(a + 0.5) - math.lgamma(a) for a in alphas])
    log_h = math.log(cfg.hazard)
    log_1mh = math.log1p(-cfg.hazard)

    mu = np.empty(0)
    kappa = np.empty(0)
    alpha = np.empty(0)
    beta = np.empty(0)
    log_r = np.empty(0)

    found: list[int] = []
    last_start = 0
    for t, xt in enumerate(x):
        mu_s = np.concatenate(([cfg.mu0], mu))
        kappa_s = np.concatenate(([cfg.kappa0], kappa))
        alpha_s = np.concatenate(([cfg.alpha0], alpha))
        beta_s = np.concatenate(([cfg.beta0], beta))

        if t == 0:
            log_prior = np.array([0.0])
        else:
            log_prior = np.concatenate(([log_h], log_r + log_1mh))

        log_pred = _student_t_logpdf(xt, mu_s, kappa_s, alpha_s, beta_s, lgamma_ratio[: len(mu_s)])
        log_r = log_prior + log_pred
        log_r -= np.logaddexp.reduce(log_r)

        mu = (kappa_s * mu_s + xt) / (kappa_s + 1.0)
        beta = beta_s + kappa_s * (xt - mu_s) ** 2 / (2.0 * (kappa_s + 1.0))
        kappa = kappa_s + 1.0
        alpha = alpha_s + 0.5

        if len(log_r) > max_run:
            log_r = log_r[:max_run]
            log_r -= np.logaddexp.reduce(log_r)
            mu, kappa, alpha, beta = mu[:max_run], kappa[:max_run], alpha[:max_run], beta[:max_run]

        # log_r[j]: the current run holds j + 1 samples, i.e. it began at t - j.
        start = t - int(np.argmax(log_r))
        if start > last_start and start - last_start >= cfg.min_segment:
            found.append(start)
            last_start = start

    result = [i * step for i in found]
    logger.debug("Changepoints: %s", result)
    return result
