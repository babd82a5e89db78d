"""
Diagnostic plots of blob fits
"""

from pathlib import Path
from typing import Optional, Union

import numpy as np
from matplotlib.figure import Figure


def plot_fit_overview(correlation: np.ndarray,
                      heights: np.ndarray,
                      filepath: Union[str, Path],
                      title: Optional[str] = None,
                      dpi: int = 100) -> Path:
    """
    Save a two-panel overview of a tilt-space fit.

    Left: frame-averaged correlation (azimuth vs. radial index) with the
    frame-averaged fitted surface. Right: fitted height per azimuth and frame.

    Args:
        correlation: Correlation volume (W, H, F)
        heights: Fitted radial index per azimuth and frame (W, F)
        filepath: Output image path
        title: Optional figure title
        dpi: Output resolution
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    width = correlation.shape[0]
    mean_correlation = correlation.mean(axis=2)

    fig = Figure(figsize=(10, 4))
    ax_corr, ax_height = fig.subplots(1, 2)

    ax_corr.imshow(mean_correlation.T, origin='lower', aspect='auto', cmap='gray')
    ax_corr.plot(np.arange(width), heights.mean(axis=1), color='red', linewidth=1.0)
    ax_corr.set_xlabel('azimuth index')
    ax_corr.set_ylabel('radial index')
    ax_corr.set_title('mean correlation')

    image = ax_height.imshow(heights.T, origin='lower', aspect='auto', cmap='viridis')
    ax_height.set_xlabel('azimuth index')
    ax_height.set_ylabel('frame')
    ax_height.set_title('fitted height')
    fig.colorbar(image, ax=ax_height)

    if title:
        fig.suptitle(title)

    fig.tight_layout()
    fig.savefig(filepath, dpi=dpi)
    return filepath
