"""
Progressive spherical-harmonics optimisation

The driver fits band 0 from a closed-form estimate, then grows the model
one band at a time. Every band starts from the previous optimum with the
new coefficients set to zero and is refined with L-BFGS.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from scipy.optimize import minimize

from .spherical_harmonics import SphericalHarmonics

logger = logging.getLogger(__name__)


class ShapeModel(ABC):
    """Objective of a fixed band order, as seen by the optimiser."""

    @property
    @abstractmethod
    def parameter_count(self) -> int:
        pass

    @abstractmethod
    def value_and_gradient(self, params: np.ndarray) -> Tuple[float, np.ndarray]:
        """Objective to minimise and its gradient."""
        pass

    @abstractmethod
    def score(self, params: np.ndarray) -> float:
        """Fit quality before regularisation, larger is better."""
        pass

    def initial_parameters(self) -> np.ndarray:
        """Starting point used when no earlier band is available."""
        return np.zeros(self.parameter_count)


class StageResult:
    """Outcome of optimising one band."""

    def __init__(self,
                 band: int,
                 params: np.ndarray,
                 objective: float,
                 score: float,
                 iterations: int,
                 converged: bool,
                 message: str = ""):
        self.band = band
        self.params = params
        self.objective = objective
        self.score = score
        self.iterations = iterations
        self.converged = converged
        self.message = message

    def __repr__(self):
        return (f"StageResult(band={self.band}, objective={self.objective:.6g}, "
                f"score={self.score:.6g}, iterations={self.iterations}, converged={self.converged})")


class OptimizationResult:
    def __init__(self, params: np.ndarray, stages: List[StageResult]):
        self.params = params
        self.stages = stages

    @property
    def converged(self) -> bool:
        return all(stage.converged for stage in self.stages)

    @property
    def band(self) -> int:
        return SphericalHarmonics.band_count(len(self.params))


class ProgressiveShapeOptimizer:
    """
    Warm-started optimisation over growing band orders.

    Args:
        max_band: Highest band fitted
        max_iterations: L-BFGS iteration cap per band
        gradient_tolerance: L-BFGS projected gradient tolerance
    """

    def __init__(self,
                 max_band: int = 2,
                 max_iterations: int = 1000,
                 gradient_tolerance: float = 1e-6):
        if max_band < 0:
            raise ValueError(f"max_band must be non-negative, got {max_band}")
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be positive, got {max_iterations}")
        self.max_band = max_band
        self.max_iterations = max_iterations
        self.gradient_tolerance = gradient_tolerance

    def optimize(self,
                 model_factory: Callable[[int], ShapeModel],
                 initial_params: Optional[Sequence[float]] = None) -> OptimizationResult:
        """
        Fit bands 0 to max_band.

        Args:
            model_factory: Returns the model of a given band
            initial_params: Optional earlier solution. Its band is re-optimised
                first, lower bands are skipped.

        Returns:
            Final parameters and one StageResult per band visited
        """
        stages = []

        if initial_params is None:
            model = model_factory(0)
            params = np.asarray(model.initial_parameters(), dtype=np.float64)
            objective, _ = model.value_and_gradient(params)
            stages.append(StageResult(0, params.copy(), float(objective), float(model.score(params)), 0, True))
            start = 1
        else:
            params = np.asarray(initial_params, dtype=np.float64)
            start = SphericalHarmonics.band_count(len(params))
            if start > self.max_band:
                raise ValueError(
                    f"Initial parameters are of band {start}, above the maximum band {self.max_band}"
                )

        for band in range(start, self.max_band + 1):
            model = model_factory(band)
            x0 = np.zeros(model.parameter_count)
            n = min(len(params), len(x0))
            x0[:n] = params[:n]

            result = minimize(
                model.value_and_gradient,
                x0,
                jac=True,
                method="L-BFGS-B",
                options={"maxiter": self.max_iterations, "gtol": self.gradient_tolerance},
            )

            params = np.asarray(result.x, dtype=np.float64)
            stage = StageResult(
                band=band,
                params=params.copy(),
                objective=float(result.fun),
                score=float(model.score(params)),
                iterations=int(result.nit),
                converged=bool(result.success),
                message=str(result.message),
            )
            stages.append(stage)

            if stage.converged:
                logger.debug("band %d: %s", band, stage)
            else:
                logger.warning("band %d did not converge after %d iterations: %s",
                               band, stage.iterations, stage.message)

        return OptimizationResult(params, stages)
