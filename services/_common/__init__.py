"""
Shared infrastructure for the sync services.

- HTTPX client with bounded attempts and linear backoff
- Structured logging with structlog
- PostgreSQL engine and upsert helpers
"""

__version__ = "0.1.0"
