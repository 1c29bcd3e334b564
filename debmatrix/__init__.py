"""debmatrix - Multi-architecture Debian package builder.

This package orchestrates building Debian packages for a matrix of target
architectures and Debian distributions from upstream GitHub release binaries.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
