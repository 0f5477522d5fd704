"""NES game database compiler and save-file codec."""

__version__ = "0.1.0"
