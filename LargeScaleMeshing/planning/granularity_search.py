"""
Granularity Search
==================

Single-block mode: lower the grid resolution until the track-count estimate
of the whole domain fits the budget.

Narrowing rule, evaluated per iteration:
    estimate <= budget        -> stop
    estimate / budget < 2.0   -> resolution - 100   ("slow")
    otherwise                 -> resolution * 0.5   ("fast")
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from ..errors import ConfigurationError, SizingSearchFailure
from ..logger import get_logger

SLOW_STEP = 100
FAST_RATIO_THRESHOLD = 2.0


@dataclass
class SearchResult:
    """Final resolution of a granularity search"""
    resolution: int
    estimate: int
    iterations: int
    history: List[Tuple[int, int]] = field(default_factory=list)


def next_resolution(resolution: int, estimate: int, budget: int) -> int:
    """Apply the narrowing rule once (estimate must exceed budget)"""
    t = estimate / budget
    if t < FAST_RATIO_THRESHOLD:
        return resolution - SLOW_STEP
    return int(resolution * 0.5)


class GranularitySearchController:
    """
    Resolution search against a track budget.

    Usage:
        controller = GranularitySearchController(
            estimate_fn=lambda res: estimator.estimate(res, grid.with_resolution(res)),
            budget=6000000,
            start_resolution=1024,
        )
        result = controller.run()
    """

    def __init__(self,
                 estimate_fn: Callable[[int], int],
                 budget: int,
                 start_resolution: int,
                 min_resolution: int = 1,
                 max_iterations: int = 1000,
                 on_step: Optional[Callable[[int], None]] = None):
        """
        Args:
            estimate_fn: Track-count estimate of the domain at a resolution
            budget: Maximum accepted estimate
            start_resolution: First resolution tried
            min_resolution: Floor under which the search fails
            max_iterations: Hard cap on iterations
            on_step: Called with every resolution before it is estimated
        """
        if budget <= 0:
            raise ConfigurationError(f"Track budget must be positive, got {budget}")
        if start_resolution <= 0:
            raise ConfigurationError(f"Start resolution must be positive, got {start_resolution}")
        if min_resolution <= 0:
            raise ConfigurationError(f"Minimum resolution must be positive, got {min_resolution}")

        self.estimate_fn = estimate_fn
        self.budget = budget
        self.start_resolution = int(start_resolution)
        self.min_resolution = int(min_resolution)
        self.max_iterations = max_iterations
        self.on_step = on_step
        self.logger = get_logger("Planning")

    def run(self) -> SearchResult:
        """
        Search the final resolution.

        Raises:
            SizingSearchFailure: If the budget cannot be met above the floor
        """
        resolution = self.start_resolution
        if resolution < self.min_resolution:
            raise SizingSearchFailure(
                f"Start resolution {resolution} is below the floor {self.min_resolution}"
            )

        history: List[Tuple[int, int]] = []
        for iteration in range(1, self.max_iterations + 1):
            if self.on_step is not None:
                self.on_step(resolution)
            estimate = int(self.estimate_fn(resolution))
            history.append((resolution, estimate))
            self.logger.info(f"Number of track candidates: {estimate:,} (ocTreeDim: {resolution})")

            if estimate <= self.budget:
                self.logger.info(f"✓ Resolution {resolution} fits the budget ({estimate:,} <= {self.budget:,})")
                return SearchResult(resolution, estimate, iteration, history)

            t = estimate / self.budget
            self.logger.info(f"downsample: {'slow' if t < FAST_RATIO_THRESHOLD else 'fast'}")
            new_resolution = next_resolution(resolution, estimate, self.budget)

            if new_resolution < self.min_resolution:
                raise SizingSearchFailure(
                    f"Cannot fit {self.budget:,} tracks: resolution would drop to "
                    f"{new_resolution} (floor {self.min_resolution}), last estimate {estimate:,}"
                )
            resolution = new_resolution

        raise SizingSearchFailure(
            f"Resolution search did not converge in {self.max_iterations} iterations"
        )
