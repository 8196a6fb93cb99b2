"""Go module dependency graph crawler."""

__version__ = "0.1.0"
