"""
Serving — FastAPI application and command-line entry point.

This module exposes ingestion and retrieval over HTTP so they can be
deployed as a standalone container, and wires the concrete clients
together at startup.
"""
