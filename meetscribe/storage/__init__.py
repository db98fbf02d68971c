"""Document persistence for meetings and outgoing mail."""

from .document_store import DocumentStore, MEETINGS_COLLECTION, MAIL_COLLECTION

__all__ = ['DocumentStore', 'MEETINGS_COLLECTION', 'MAIL_COLLECTION']
