"""Local document store: one JSON file per document, one directory per collection."""

import json
import logging
import random
import string
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional, List


logger = logging.getLogger(__name__)

MEETINGS_COLLECTION = "transcriptions"
MAIL_COLLECTION = "mail"


class DocumentStore:
    """Stores meeting and mail documents under the data directory."""

    def __init__(self, data_dir: str = "./data"):
        """Initialize the store with its data directory.

        Args:
            data_dir: Base directory; collections are created beneath it
        """
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"DocumentStore initialized with data_dir: {self.data_dir}")

    def _collection_dir(self, collection: str) -> Path:
        if not collection or "/" in collection or collection.startswith("."):
            raise ValueError(f"Invalid collection name: {collection!r}")
        path = self.data_dir / collection
        path.mkdir(parents=True, exist_ok=True)
        return path

    @staticmethod
    def _new_document_id() -> str:
        # Timestamp prefix keeps ids sortable; suffix keeps them unique
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        random_suffix = ''.join(random.choices(string.ascii_lowercase + string.digits, k=6))
        return f"{timestamp}_{random_suffix}"

    def add_document(self, collection: str, data: Dict[str, Any]) -> str:
        """Write a new document and return its id.

        Raises:
            OSError: If the document cannot be written
        """
        collection_dir = self._collection_dir(collection)
        document_id = self._new_document_id()
        while (collection_dir / f"{document_id}.json").exists():
            document_id = self._new_document_id()

        document_path = collection_dir / f"{document_id}.json"
        try:
            with open(document_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
        except (OSError, TypeError) as e:
            logger.error(f"Error writing document {collection}/{document_id}: {e}")
            raise

        logger.info(f"Document saved: {document_path}")
        return document_id

    def get_document(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        """Load one document, or None if it does not exist."""
        document_path = self._collection_dir(collection) / f"{document_id}.json"
        if not document_path.exists():
            logger.warning(f"Document not found: {document_path}")
            return None

        try:
            with open(document_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error loading document {collection}/{document_id}: {e}")
            return None

    def list_documents(self, collection: str) -> List[str]:
        """List document ids in a collection, oldest first."""
        collection_dir = self._collection_dir(collection)
        document_ids = sorted(path.stem for path in collection_dir.glob("*.json"))
        logger.debug(f"Found {len(document_ids)} documents in {collection}")
        return document_ids
