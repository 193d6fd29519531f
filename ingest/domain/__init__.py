"""
Domain package for the message ingest pipeline.

Exports the core domain models shared by the producer, consumer and stores.
Keep this package focused on data definitions and validation concerns.
"""

from ingest.domain.models import MessageStatus, Page, Record

__all__ = [
    "MessageStatus",
    "Page",
    "Record",
]
