"""Fresh Market API: local produce marketplace with mobile-money payments."""

__version__ = "1.0.0"
