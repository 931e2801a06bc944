"""Bus service alerts, filtered to today and laid out for small character displays."""

__version__ = "0.1.0"
