"""YouTube caption retrieval microservice."""

__version__ = "0.3.0"
