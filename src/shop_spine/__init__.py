"""Shop Spine - resilient database access and order placement for a small shop backend."""

__version__ = "0.1.0"
