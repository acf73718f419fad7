"""Resource-oriented REST building blocks: resources, handlers, request contexts, collections and WSGI routing."""

__version__ = "0.1.0"