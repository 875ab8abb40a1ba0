"""
Storage administration backend for the ChiroSites Pro admin console.

This package provides storage usage accounting, orphaned asset cleanup and
asset upload/delete helpers behind a FastAPI application, with storage and
database abstractions so the same code runs against S3-compatible storage
and Postgres in production or in-memory backends in tests.
"""
