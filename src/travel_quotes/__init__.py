"""Travel Quotes Backend: quote request lifecycle for B2B travel agencies."""

__version__ = "1.0.0"
