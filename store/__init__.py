"""
Local persistence: documents, sync state, audit log, and run summaries.
"""

from store.audit import AuditSink, ChangeRecord
from store.documents import Collection, DocumentStore, UpsertResult
from store.state import StateStore
from store.summaries import SummaryRepository

__all__ = [
    'AuditSink',
    'ChangeRecord',
    'Collection',
    'DocumentStore',
    'UpsertResult',
    'StateStore',
    'SummaryRepository',
]
