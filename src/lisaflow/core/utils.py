"""Utility functions and helpers."""

import logging
from enum import Enum

import numpy as np

# Tolerance used when checking row sums and local/global consistency
FLOAT_TOLERANCE = 1e-9


# Logging setup
def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with standardized configuration.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

    return logger


# Common CRS definitions
class CRS(str, Enum):
    """Common coordinate reference systems."""

    WGS84 = "EPSG:4326"  # Standard lat/lon
    WEB_MERCATOR = "EPSG:3857"  # Web mapping
    US_NATIONAL_ATLAS = "EPSG:2163"  # US equal area (meters)
    CONUS_ALBERS = "EPSG:5070"  # NAD83 / Conus Albers (census tracts)
    UTM_ZONE_16N = "EPSG:32616"


def format_ids(ids: list[str], limit: int = 10) -> str:
    """
    Render a list of unit identifiers for log and error messages.

    Args:
        ids: Unit identifiers
        limit: Maximum number of identifiers shown before truncating

    Returns:
        Comma separated identifiers, e.g. "a, b, c (+4 more)"
    """
    shown = ", ".join(str(i) for i in ids[:limit])
    if len(ids) > limit:
        shown += f" (+{len(ids) - limit} more)"
    return shown


def unit_rng(seed: int, index: int) -> np.random.Generator:
    """
    Return the random generator for draw *index* under base *seed*.

    Each draw gets its own stream, so results do not depend on how draws are
    split across workers.
    """
    return np.random.default_rng([seed, index])


def folded_pseudo_p(simulated: np.ndarray, observed: np.ndarray | float) -> np.ndarray:
    """
    Pseudo p-value of *observed* against permutation draws.

    Counts draws at least as large as the observed statistic and folds the
    count onto the smaller tail, giving ``(extreme + 1) / (B + 1)``.

    Args:
        simulated: Simulated statistics with draws along axis 0
        observed: Observed statistic(s)

    Returns:
        Array of pseudo p-values (0-d for a scalar observation)
    """
    permutations = simulated.shape[0]
    larger = (simulated >= observed).sum(axis=0)
    larger = np.where(permutations - larger < larger, permutations - larger, larger)
    return (larger + 1.0) / (permutations + 1.0)
