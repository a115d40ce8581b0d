"""WSGI application and command line for capturing and inspecting webhook requests."""

__version__ = "0.1.0"