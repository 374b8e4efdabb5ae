"""Stock live-data tracker: provider ingestion, series storage and event detection."""

__version__ = "0.1.0"
