"""
Tilt-series preprocessing before blob fitting

Binning by Fourier cropping, fiducial erasure, high-pass filtering and
dose weighting. Stacks are (frames, y, x); projection matrices stay in
unbinned pixels and positions are divided by the binning factor where
binned images are addressed.
"""

import logging
from typing import Optional

import numpy as np
from scipy import fft
from scipy.ndimage import gaussian_filter
from skimage.draw import disk

logger = logging.getLogger(__name__)

# Grant & Grigorieff (2015) critical exposure fit
CRITICAL_EXPOSURE_A = 0.245
CRITICAL_EXPOSURE_B = -1.665
CRITICAL_EXPOSURE_C = 2.81


def fourier_crop(stack: np.ndarray, factor: float, num_threads: int = 1) -> np.ndarray:
    """
    Bin every frame by cropping its Fourier transform.

    Args:
        stack: Tilt series (F, ny, nx)
        factor: Binning factor, >= 1
        num_threads: FFT worker count

    Returns:
        float32 stack (F, round(ny/factor), round(nx/factor)), mean preserved
    """
    if factor < 1:
        raise ValueError(f"Binning factor must be >= 1, got {factor}")

    stack = np.asarray(stack, dtype=np.float32)
    if factor == 1:
        return stack.copy()

    ny, nx = stack.shape[-2:]
    my, mx = max(1, int(round(ny / factor))), max(1, int(round(nx / factor)))

    spectrum = fft.fftshift(fft.fft2(stack, axes=(-2, -1), workers=num_threads), axes=(-2, -1))

    y0 = ny // 2 - my // 2
    x0 = nx // 2 - mx // 2
    cropped = spectrum[..., y0:y0 + my, x0:x0 + mx]

    out = fft.ifft2(fft.ifftshift(cropped, axes=(-2, -1)), axes=(-2, -1), workers=num_threads).real
    out *= (my * mx) / float(ny * nx)

    return out.astype(np.float32)


def erase_fiducials(stack: np.ndarray,
                    fiducials: np.ndarray,
                    projections: np.ndarray,
                    radius: float,
                    binning: float = 1.0) -> np.ndarray:
    """
    Paint over gold fiducials with the frame mean.

    Args:
        stack: Binned tilt series (F, ny, nx)
        fiducials: Fiducial positions (N, 3) in unbinned tomogram pixels
        projections: Unbinned projection matrices (F, 4, 4)
        radius: Fiducial radius in unbinned pixels
        binning: Binning factor of the stack
    """
    out = np.array(stack, dtype=np.float32, copy=True)
    fiducials = np.asarray(fiducials, dtype=np.float64).reshape(-1, 3)
    if len(fiducials) == 0:
        return out

    homogeneous = np.hstack([fiducials, np.ones((len(fiducials), 1))])
    frame_shape = out.shape[1:]

    for f in range(out.shape[0]):
        fill = float(out[f].mean())
        positions = (homogeneous @ projections[f].T)[:, :2] / binning
        for x, y in positions:
            rr, cc = disk((y, x), radius / binning, shape=frame_shape)
            out[f, rr, cc] = fill

    return out


def highpass_filter(stack: np.ndarray, sigma: float) -> np.ndarray:
    """Subtract a per-frame Gaussian blur of width sigma (pixels)."""
    stack = np.asarray(stack, dtype=np.float32)
    if sigma <= 0:
        return stack.copy()
    low = gaussian_filter(stack, sigma=(0, sigma, sigma), mode='reflect')
    return (stack - low).astype(np.float32)


def dose_weights(shape, pixel_size: float, cumulative_dose: np.ndarray) -> np.ndarray:
    """
    Exposure filter per frame and real-FFT frequency.

    Returns:
        Weights (F, ny, nx // 2 + 1)
    """
    ny, nx = shape
    fy = fft.fftfreq(ny, d=pixel_size)
    fx = fft.rfftfreq(nx, d=pixel_size)
    k = np.sqrt(fy[:, None] ** 2 + fx[None, :] ** 2)

    with np.errstate(divide='ignore'):
        critical = CRITICAL_EXPOSURE_A * np.power(k, CRITICAL_EXPOSURE_B) + CRITICAL_EXPOSURE_C

    dose = np.asarray(cumulative_dose, dtype=np.float64)[:, None, None]
    return np.exp(-dose / (2.0 * critical[None, :, :]))


def apply_dose_weights(stack: np.ndarray,
                       pixel_size: float,
                       cumulative_dose: np.ndarray,
                       num_threads: int = 1) -> np.ndarray:
    """
    Attenuate every frame according to its accumulated electron dose.

    Args:
        stack: Tilt series (F, ny, nx)
        pixel_size: Pixel size of the stack in Angstrom
        cumulative_dose: Dose before each frame in e/A^2, shape (F,)
    """
    stack = np.asarray(stack, dtype=np.float32)
    if len(cumulative_dose) != stack.shape[0]:
        raise ValueError(f"{len(cumulative_dose)} dose values for {stack.shape[0]} frames")

    weights = dose_weights(stack.shape[1:], pixel_size, cumulative_dose)
    spectrum = fft.rfft2(stack, axes=(-2, -1), workers=num_threads)
    out = fft.irfft2(spectrum * weights, s=stack.shape[1:], axes=(-2, -1), workers=num_threads)

    return out.astype(np.float32)


def prepare_stack(stack: np.ndarray,
                  binning: float,
                  pixel_size: float,
                  projections: np.ndarray,
                  cumulative_dose: Optional[np.ndarray] = None,
                  fiducials: Optional[np.ndarray] = None,
                  fiducial_radius: float = 0.0,
                  highpass_sigma: float = 0.0,
                  num_threads: int = 1) -> np.ndarray:
    """
    Bin and filter a tilt series for blob fitting.

    Args:
        stack: Unbinned tilt series (F, ny, nx)
        binning: Binning factor
        pixel_size: Unbinned pixel size in Angstrom
        projections: Unbinned projection matrices (F, 4, 4)
        cumulative_dose: Dose before each frame; no dose weighting if None
        fiducials: Fiducial positions (N, 3) in unbinned pixels
        fiducial_radius: Fiducial radius in Angstrom
        highpass_sigma: High-pass sigma in Angstrom; 0 disables the filter
        num_threads: FFT worker count

    Returns:
        Binned float32 stack
    """
    logger.info("Binning tilt series by %g", binning)
    binned = fourier_crop(stack, binning, num_threads)

    if fiducials is not None and len(fiducials) > 0:
        logger.info("Erasing %d fiducial markers", len(fiducials))
        binned = erase_fiducials(binned, fiducials, projections, fiducial_radius / pixel_size, binning)

    if highpass_sigma > 0:
        binned = highpass_filter(binned, highpass_sigma / (pixel_size * binning))

    if cumulative_dose is not None and np.any(np.asarray(cumulative_dose) > 0):
        binned = apply_dose_weights(binned, pixel_size * binning, cumulative_dose, num_threads)

    return binned
