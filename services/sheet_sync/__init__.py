"""
Sheet Sync service.

One-way mirror of a Google Sheet into the students table:
- Fetch (service account, API key or public CSV export)
- Normalize and validate rows
- Delete stored rows missing from the sheet
- Upsert sparse patches so blank cells never erase stored data
"""

__version__ = "0.1.0"
