"""
Club portal admin backend.

This package provides a FastAPI application for blog administration,
ranklist/event management and account maintenance, with storage, cache and
database abstractions that have in-memory doubles for local runs and tests.
"""
