"""KMZ processor: queued KMZ ingestion into PostGIS."""

__version__ = "0.1.0"
