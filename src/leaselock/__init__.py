"""Redis-backed distributed leases with compare-and-swap release."""

__all__ = ["__version__"]

__version__ = "0.1.0"
