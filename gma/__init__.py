"""Market-data toolkit: indicator store, tick dispatching and limit order books."""

__version__ = "0.1.0"