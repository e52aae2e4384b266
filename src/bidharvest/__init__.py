"""Collection and intake pipeline for procurement opportunity listings."""

__version__ = "0.1.0"
