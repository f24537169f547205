"""Job model, SQLite job store, CSV result service and a WSGI/SSE server for map scraping jobs."""

__version__ = "1.8.2"