"""ReelForge: screenplay-to-reel production pipeline."""

__version__ = "0.1.0"
