"""School Explorer: trust and resource governance for a school-data assistant."""

__version__ = "0.1.0"
