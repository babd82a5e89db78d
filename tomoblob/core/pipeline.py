"""
Blob fitting pipeline

Per blob: tilt-space map -> weighted matched filter -> progressive
spherical-harmonics fit -> position/shape decoupling. Per tomogram: the
tilt series is binned and filtered once, blobs are fitted (optionally in
parallel), tessellated and written out. Per batch: inputs are validated
up front, then every tomogram is processed on its own so that one
failing tomogram does not stop the others.

Author: TomoBlob Team
"""

import logging
from collections import OrderedDict
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from ..config.manager import ConfigManager
from ..data.preprocessing import prepare_stack
from ..data.tomogram_set import TomogramInfo, TomogramSet, read_fiducials
from ..utils.marker_utils import SeedSphere, read_seed_list, read_seed_markers
from ..utils.mrc_utils import MRCWriter
from .blob_fit import TiltSpaceBlobFit
from .correlation import correlate
from .decoupling import decouple_position
from .exceptions import BlobFitError, TomogramNotFoundError
from .membrane_kernel import construct_membrane_kernel
from .optimizer import ProgressiveShapeOptimizer, StageResult
from .tessellation import Mesh, tessellate
from .tilt_space import (
    TiltSpaceGeometry,
    compute_directions,
    compute_tilt_space_map,
    tilt_axis_azimuths,
)
from .weighting import compute_weights

logger = logging.getLogger(__name__)


class BlobFit:
    """
    Fitted surface of one blob.

    Attributes:
        seed: Seed sphere the fit started from
        coefficients: [cx, cy, cz, r0, c_0, ..., c_n] in unbinned pixels
        stages: One StageResult per optimised band, coarse pass first
        geometry: Sampling frame of the last pass
    """

    def __init__(self,
                 seed: SeedSphere,
                 coefficients: np.ndarray,
                 stages: List[StageResult],
                 geometry: TiltSpaceGeometry):
        self.seed = seed
        self.coefficients = coefficients
        self.stages = stages
        self.geometry = geometry

    @property
    def converged(self) -> bool:
        return all(stage.converged for stage in self.stages)

    @property
    def center(self) -> np.ndarray:
        return self.coefficients[:3]

    @property
    def mean_radius(self) -> float:
        return float(self.coefficients[3])

    def __repr__(self):
        return (f"BlobFit(seed={self.seed.id}, center={np.round(self.center, 2).tolist()}, "
                f"r0={self.mean_radius:.2f}, converged={self.converged})")


class BlobSegmenter:
    """
    Fits the surface of single blobs around seed spheres.

    Args:
        sphere_thickness: Radial search range in unbinned pixels
        binning: Binning of the (first) fitting pass
        final_binning: Binning of an optional refinement pass; None or a
            value not below `binning` disables refinement
        sh_bands: Highest spherical-harmonics band
        prior_sigma: Frame-edge prior width in unbinned pixels
        regularization: Roughness weight lambda
        max_iterations: L-BFGS iteration cap per band
        gradient_tolerance: L-BFGS gradient tolerance
        kernel_falloff: Kernel envelope sigma in unbinned pixels
        leaflet_width: Leaflet sigma in unbinned pixels
        leaflet_spacing: Leaflet separation in Angstrom
        contrast_ratio: Leaflet to halo contrast ratio
        kernel_depth: Bilayer offset in unbinned pixels
        polarity: -1 for dark membranes
        num_threads: FFT worker count
    """

    def __init__(self,
                 sphere_thickness: float,
                 binning: float = 8.0,
                 final_binning: Optional[float] = None,
                 sh_bands: int = 2,
                 prior_sigma: float = 100.0,
                 regularization: float = 1e-5,
                 max_iterations: int = 1000,
                 gradient_tolerance: float = 1e-6,
                 kernel_falloff: float = 100.0,
                 leaflet_width: float = 10.0,
                 leaflet_spacing: float = 40.0,
                 contrast_ratio: float = 5.0,
                 kernel_depth: float = 0.0,
                 polarity: float = -1.0,
                 num_threads: int = 1):
        self.sphere_thickness = sphere_thickness
        self.binning = binning
        self.final_binning = final_binning
        self.sh_bands = sh_bands
        self.prior_sigma = prior_sigma
        self.regularization = regularization
        self.kernel_falloff = kernel_falloff
        self.leaflet_width = leaflet_width
        self.leaflet_spacing = leaflet_spacing
        self.contrast_ratio = contrast_ratio
        self.kernel_depth = kernel_depth
        self.polarity = polarity
        self.num_threads = num_threads
        self.optimizer = ProgressiveShapeOptimizer(sh_bands, max_iterations, gradient_tolerance)

    @property
    def refines(self) -> bool:
        return self.final_binning is not None and self.final_binning < self.binning

    @property
    def binnings(self) -> List[float]:
        """Binning factors of all passes, coarse first."""
        return [self.binning, self.final_binning] if self.refines else [self.binning]

    def segment_blob(self,
                     seed: SeedSphere,
                     stack: np.ndarray,
                     pixel_size: float,
                     projections: np.ndarray,
                     diag_prefix: Optional[str] = None,
                     fine_stack: Optional[np.ndarray] = None) -> BlobFit:
        """
        Fit one blob.

        Args:
            seed: Seed sphere in unbinned pixels
            stack: Tilt series binned by `binning`
            pixel_size: Unbinned pixel size in Angstrom
            projections: Unbinned projection matrices (F, 4, 4)
            diag_prefix: Path prefix of diagnostic files, None to skip them
            fine_stack: Tilt series binned by `final_binning`, required when refining

        Raises:
            BlobFitError: If the blob cannot be fitted
        """
        if not seed.radius > 0:
            raise BlobFitError(f"Seed {seed.id} has non-positive radius {seed.radius:.3g}")

        geometry, result = self._fit_pass(seed, stack, self.binning, pixel_size, projections, diag_prefix)
        stages = list(result.stages)

        if self.refines:
            if fine_stack is None:
                raise ValueError(f"Refinement at binning {self.final_binning} needs fine_stack")

            # Both passes share centre and minimum radius, so heights only rescale.
            initial = result.params * self.binning / self.final_binning
            geometry, result = self._fit_pass(
                seed, fine_stack, self.final_binning, pixel_size, projections,
                None if diag_prefix is None else diag_prefix + "_refined",
                initial_params=initial,
            )
            stages.extend(result.stages)

        coefficients = decouple_position(result.params, geometry)

        if not np.all(np.isfinite(coefficients)):
            raise BlobFitError(f"Fit of seed {seed.id} produced non-finite coefficients")
        if coefficients[3] <= 0:
            raise BlobFitError(f"Fit of seed {seed.id} collapsed to mean radius {coefficients[3]:.3g}")

        return BlobFit(seed, coefficients, stages, geometry)

    def _fit_pass(self,
                  seed: SeedSphere,
                  stack: np.ndarray,
                  binning: float,
                  pixel_size: float,
                  projections: np.ndarray,
                  diag_prefix: Optional[str],
                  initial_params: Optional[np.ndarray] = None):
        geometry = TiltSpaceGeometry.create(
            seed.center, seed.radius, self.sphere_thickness, binning, len(projections)
        )
        logger.debug("Seed %d: %r", seed.id, geometry)

        tilt_map = compute_tilt_space_map(geometry, stack, projections)
        directions = compute_directions(geometry, projections)

        kernel = construct_membrane_kernel(
            geometry.shape,
            falloff=self.kernel_falloff / binning,
            width=self.leaflet_width / binning,
            spacing=self.leaflet_spacing / (pixel_size * binning),
            ratio=self.contrast_ratio,
            depth=self.kernel_depth / binning,
            polarity=self.polarity,
        )
        weights = compute_weights(geometry, tilt_axis_azimuths(projections), self.prior_sigma)
        correlation = correlate(tilt_map, kernel, weights, self.num_threads)

        def model_factory(band):
            return TiltSpaceBlobFit(band, self.regularization, correlation, directions)

        result = self.optimizer.optimize(model_factory, initial_params)

        if diag_prefix is not None:
            self._write_diagnostics(diag_prefix, tilt_map, kernel, correlation,
                                    model_factory(result.band), result.params)

        return geometry, result

    def _write_diagnostics(self, prefix, tilt_map, kernel, correlation, model, params):
        from ..utils.visualization import plot_fit_overview

        Path(prefix).parent.mkdir(parents=True, exist_ok=True)
        MRCWriter.write_tilt_space(tilt_map, prefix + "_tilt_space_map.mrc")
        MRCWriter.write_tilt_space(kernel, prefix + "_tilt_space_kernel.mrc")
        MRCWriter.write_tilt_space(correlation, prefix + "_tilt_space_correlation.mrc")
        MRCWriter.write_tilt_space(
            model.draw_solution(params, tilt_map),
            prefix + f"_tilt_space_plot_SH_{self.sh_bands}.mrc",
        )
        plot_fit_overview(correlation, model.heights(params), prefix + "_fit.png",
                          title=Path(prefix).name)


def create_blob_segmenter(config: ConfigManager) -> BlobSegmenter:
    """
    Factory function to create a BlobSegmenter from a configuration.

    The sphere thickness is given in seed coordinates and scaled by the
    seed binning here.
    """
    final_binning = config.get("fitting.final_binning")
    return BlobSegmenter(
        sphere_thickness=float(config.get("seeds.sphere_thickness")) * float(config.get("seeds.binning")),
        binning=float(config.get("fitting.initial_binning")),
        final_binning=None if final_binning is None else float(final_binning),
        sh_bands=int(config.get("fitting.sh_bands")),
        prior_sigma=float(config.get("fitting.prior_sigma")),
        regularization=float(config.get("fitting.regularization")),
        max_iterations=int(config.get("fitting.max_iterations")),
        gradient_tolerance=float(config.get("fitting.gradient_tolerance")),
        kernel_falloff=float(config.get("kernel.falloff")),
        leaflet_width=float(config.get("kernel.leaflet_width")),
        leaflet_spacing=float(config.get("kernel.leaflet_spacing_angstrom")),
        contrast_ratio=float(config.get("kernel.contrast_ratio")),
        kernel_depth=float(config.get("kernel.depth")),
        polarity=float(config.get("kernel.polarity")),
        num_threads=int(config.get("system.num_threads")),
    )


class TomogramResult:
    """Blob fits and output files of one tomogram."""

    def __init__(self, name: str):
        self.name = name
        self.fits: List[BlobFit] = []
        self.failures: List[Tuple[int, int, str]] = []
        self.mesh = Mesh()
        self.coefficients_path: Optional[Path] = None
        self.mesh_path: Optional[Path] = None

    def __repr__(self):
        return f"TomogramResult({self.name!r}, fits={len(self.fits)}, failures={len(self.failures)})"


class BatchResult:
    """Outcome of a whole run."""

    def __init__(self,
                 tomograms: List[TomogramResult],
                 failed_tomograms: Dict[str, str],
                 tomograms_star: Path,
                 blob_tomograms_star: Path):
        self.tomograms = tomograms
        self.failed_tomograms = failed_tomograms
        self.tomograms_star = tomograms_star
        self.blob_tomograms_star = blob_tomograms_star

    @property
    def success(self) -> bool:
        return not self.failed_tomograms


def coefficients_table(fits: List[Tuple[int, BlobFit]]) -> pd.DataFrame:
    """One row per blob: index, seed, centre, r0, shape coefficients, convergence."""
    rows = []
    for index, fit in fits:
        row = OrderedDict([
            ("blob_index", index),
            ("seed_id", fit.seed.id),
            ("x", fit.coefficients[0]),
            ("y", fit.coefficients[1]),
            ("z", fit.coefficients[2]),
            ("r0", fit.coefficients[3]),
        ])
        for i, value in enumerate(fit.coefficients[4:]):
            row[f"sh_{i}"] = value
        row["converged"] = fit.converged
        rows.append(row)
    return pd.DataFrame(rows)


class BlobFittingPipeline:
    """
    Fits all seeded blobs of a tomogram set.

    Args:
        config: Validated configuration
    """

    def __init__(self, config: ConfigManager):
        self.config = config
        self.segmenter = create_blob_segmenter(config)
        self.output_dir = Path(config.get("output.directory"))

    def load_inputs(self) -> Tuple[TomogramSet, "OrderedDict[str, Tuple[TomogramInfo, List[SeedSphere]]]"]:
        """
        Read the tomogram set and every seed file.

        Raises:
            InputError: On an unreadable file, malformed marker or unknown tomogram
        """
        tomogram_set = TomogramSet.read(self.config.get("input.tomogram_set"))
        seed_files = read_seed_list(self.config.get("input.seed_list"))
        seed_binning = float(self.config.get("seeds.binning"))

        jobs = OrderedDict()
        for name, seeds_path in seed_files.items():
            if name not in tomogram_set.names:
                raise TomogramNotFoundError(name, tomogram_set.path)
            info = tomogram_set.get_tomogram(name)
            jobs[name] = (info, read_seed_markers(seeds_path, seed_binning))

        return tomogram_set, jobs

    def process_tomogram(self, info: TomogramInfo, seeds: List[SeedSphere]) -> TomogramResult:
        """Fit, tessellate and write all blobs of one tomogram."""
        name = info.name
        result = TomogramResult(name)
        logger.info("Tomogram %s: %d seed(s), pixel size %.3f A", name, len(seeds), info.pixel_size)

        stack = info.load_stack()
        fiducials = read_fiducials(info.fiducials_path) if info.has_fiducials else None
        dose = info.cumulative_dose if self.config.get("preprocessing.dose_weighting") else None

        stacks = {
            binning: prepare_stack(
                stack,
                binning,
                info.pixel_size,
                info.projections,
                cumulative_dose=dose,
                fiducials=fiducials,
                fiducial_radius=float(self.config.get("preprocessing.fiducial_radius_angstrom")),
                highpass_sigma=float(self.config.get("preprocessing.highpass_sigma_angstrom")),
                num_threads=self.segmenter.num_threads,
            )
            for binning in self.segmenter.binnings
        }
        coarse = stacks[self.segmenter.binning]
        fine = stacks.get(self.segmenter.final_binning) if self.segmenter.refines else None

        diag_dir = self.output_dir / "diag" if self.config.get("output.diagnostics") else None

        def fit(item):
            index, seed = item
            prefix = None if diag_dir is None else str(diag_dir / f"{name}_blob_{index}")
            try:
                blob = self.segmenter.segment_blob(
                    seed, coarse, info.pixel_size, info.projections, prefix, fine_stack=fine
                )
            except (BlobFitError, np.linalg.LinAlgError, FloatingPointError) as e:
                logger.warning("Tomogram %s, blob %d (seed %d) skipped: %s", name, index, seed.id, e)
                return index, seed, None, str(e)

            logger.info("Tomogram %s, blob %d: %r", name, index, blob)
            for stage in blob.stages:
                if not stage.converged:
                    logger.warning("Tomogram %s, blob %d: band %d did not converge after %d iterations: %s",
                                   name, index, stage.band, stage.iterations, stage.message)
            return index, seed, blob, None

        workers = int(self.config.get("system.blob_workers"))
        items = list(enumerate(seeds))
        if workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                outcomes = list(executor.map(fit, items))
        else:
            outcomes = [fit(item) for item in items]

        self.output_dir.mkdir(parents=True, exist_ok=True)
        write_meshes = bool(self.config.get("output.write_meshes"))
        if write_meshes:
            from ..utils.mesh_io import write_mesh

        spacing = float(self.config.get("mesh.spacing_angstrom"))
        max_tilt = float(self.config.get("mesh.max_tilt_deg"))

        fitted = []
        for index, seed, blob, error in outcomes:
            if blob is None:
                result.failures.append((index, seed.id, error))
                continue

            mesh = tessellate(blob.coefficients, info.pixel_size, spacing, max_tilt)
            if write_meshes:
                write_mesh(mesh, self.output_dir / f"{name}_blob_{index}.obj")
            result.mesh.insert(mesh)
            result.fits.append(blob)
            fitted.append((index, blob))

        if fitted:
            result.coefficients_path = self.output_dir / f"{name}_blob_coefficients.csv"
            coefficients_table(fitted).to_csv(result.coefficients_path, index=False)
            if write_meshes:
                result.mesh_path = write_mesh(result.mesh, self.output_dir / f"{name}_blobs.obj")

        logger.info("Tomogram %s: %d blob(s) fitted, %d skipped", name, len(result.fits), len(result.failures))
        return result

    def run(self) -> BatchResult:
        """
        Process every tomogram listed in the seed list.

        Returns:
            BatchResult; tomograms that raised are listed in failed_tomograms
        """
        tomogram_set, jobs = self.load_inputs()
        self.output_dir.mkdir(parents=True, exist_ok=True)

        subtracted_set = tomogram_set.copy()
        blob_set = tomogram_set.copy()

        results = []
        failed = OrderedDict()

        for name, (info, seeds) in jobs.items():
            try:
                result = self.process_tomogram(info, seeds)
            except Exception as e:
                logger.exception("Tomogram %s failed: %s", name, e)
                failed[name] = str(e)
                continue

            results.append(result)
            if result.coefficients_path is not None:
                blob_set.set_value(name, "rlnTomoBlobCoefficientsFile", str(result.coefficients_path))
            if result.mesh_path is not None:
                blob_set.set_value(name, "rlnTomoBlobMeshFile", str(result.mesh_path))

        tomograms_star = subtracted_set.write(self.output_dir / "tomograms.star")
        blob_tomograms_star = blob_set.write(self.output_dir / "blob_tomograms.star")

        return BatchResult(results, failed, tomograms_star, blob_tomograms_star)


def run_blob_fitting(config: Union[ConfigManager, dict]) -> BatchResult:
    """
    One-shot convenience wrapper: validate a configuration and run the pipeline.
    """
    if not isinstance(config, ConfigManager):
        config = ConfigManager(config=config)
    config.validate()
    return BlobFittingPipeline(config).run()
