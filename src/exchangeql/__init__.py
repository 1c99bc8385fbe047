"""exchangeql: natural-language questions over 1031 exchange case data."""

__version__ = "0.3.0"
