"""Client toolkit for tiled geospatial imagery and feature services."""

__version__ = "0.1.0"
