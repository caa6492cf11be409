"""
Core package — cross-cutting concerns.

Modules:
    config      — environment variables & settings
    logging     — structured JSON logging
    errors      — exception hierarchy & handlers
    middleware  — CORS, request logging
    health      — health check aggregation
    database    — async PostgreSQL connection
"""
