"""
Default configuration

Lengths are in unbinned tilt-series pixels unless the key says otherwise.
"""

DEFAULT_CONFIG = {
    "input": {
        "tomogram_set": "tomograms.star",
        "seed_list": None
    },
    "seeds": {
        "binning": 1.0,
        "sphere_thickness": None
    },
    "fitting": {
        "initial_binning": 8.0,
        "final_binning": None,
        "sh_bands": 2,
        "prior_sigma": 100.0,
        "regularization": 1e-5,
        "max_iterations": 1000,
        "gradient_tolerance": 1e-6
    },
    "kernel": {
        "falloff": 100.0,
        "leaflet_width": 10.0,
        "leaflet_spacing_angstrom": 40.0,
        "contrast_ratio": 5.0,
        "depth": 0.0,
        "polarity": -1.0
    },
    "preprocessing": {
        "fiducial_radius_angstrom": 100.0,
        "highpass_sigma_angstrom": 300.0,
        "dose_weighting": True
    },
    "mesh": {
        "spacing_angstrom": 50.0,
        "max_tilt_deg": 20.0
    },
    "output": {
        "directory": "blobs",
        "diagnostics": False,
        "write_meshes": True,
        "log_file": "fit_blobs.log"
    },
    "system": {
        "num_threads": 6,
        "blob_workers": 1
    }
}
