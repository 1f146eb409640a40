"""
Database Service - thin async wrapper over the Firestore client.

Every method returns a tuple whose first element is a success flag and whose
last element is an error string, so callers decide how to surface failures.
Collection arguments accept nested paths such as
``conversations/<id>/messages``.
"""

from typing import Any, Dict, List, Optional, Tuple
import logging

from google.api_core.exceptions import AlreadyExists
from google.cloud.firestore_v1 import FieldFilter, Query

from .firestore_client import get_firestore_client

logger = logging.getLogger(__name__)

_DIRECTIONS = {
    'asc': Query.ASCENDING,
    'desc': Query.DESCENDING,
}


class DatabaseService:
    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_firestore_client()
        return self._client

    def _collection(self, collection_name: str):
        return self.client.collection(collection_name)

    @staticmethod
    def _to_dict(doc) -> Dict[str, Any]:
        data = doc.to_dict() or {}
        data['id'] = doc.id
        data['_doc_id'] = doc.id
        return data

    async def get_document(self, collection_name: str, document_id: str) -> Tuple[bool, Optional[Dict[str, Any]], Optional[str]]:
        """Fetch a single document by id"""
        try:
            doc = self._collection(collection_name).document(document_id).get()
            if not doc.exists:
                return False, None, f"Document {document_id} not found in {collection_name}"
            return True, self._to_dict(doc), None
        except Exception as e:
            logger.error(f"Error getting document {document_id} from {collection_name}: {str(e)}")
            return False, None, str(e)

    async def query_documents(
        self,
        collection_name: str,
        filters: Optional[List[Tuple[str, str, Any]]] = None,
        order_by: Optional[List[Tuple[str, str]]] = None,
        limit: Optional[int] = None,
        start_after: Optional[Dict[str, Any]] = None,
    ) -> Tuple[bool, List[Dict[str, Any]], Optional[str]]:
        """
        Query a collection.

        Args:
            collection_name: Collection or subcollection path
            filters: List of (field, operator, value) tuples
            order_by: List of (field, 'asc' | 'desc') tuples
            limit: Maximum number of documents to return
            start_after: Cursor values keyed by the order_by fields; results
                begin strictly after that position
        """
        try:
            query = self._collection(collection_name)
            for field, op, value in filters or []:
                query = query.where(filter=FieldFilter(field, op, value))
            for field, direction in order_by or []:
                query = query.order_by(field, direction=_DIRECTIONS.get(direction, Query.ASCENDING))
            if start_after:
                query = query.start_after(start_after)
            if limit:
                query = query.limit(limit)

            return True, [self._to_dict(doc) for doc in query.stream()], None
        except Exception as e:
            logger.error(f"Error querying {collection_name}: {str(e)}")
            return False, [], str(e)

    async def create_document(
        self,
        collection_name: str,
        data: Dict[str, Any],
        document_id: Optional[str] = None,
    ) -> Tuple[bool, Optional[str], Optional[str]]:
        """Create a document, generating an id unless one is given"""
        try:
            collection = self._collection(collection_name)
            doc_ref = collection.document(document_id) if document_id else collection.document()
            doc_ref.set(data)
            return True, doc_ref.id, None
        except Exception as e:
            logger.error(f"Error creating document in {collection_name}: {str(e)}")
            return False, None, str(e)

    async def create_document_if_absent(
        self,
        collection_name: str,
        document_id: str,
        data: Dict[str, Any],
    ) -> Tuple[bool, Optional[Dict[str, Any]], Optional[str]]:
        """
        Conditionally create a document under a fixed id.

        Returns (success, document, error) where ``document`` is either the
        newly written data or the one that already existed. The write fails
        server-side when the id is taken, so concurrent callers converge on a
        single document.
        """
        doc_ref = self._collection(collection_name).document(document_id)
        try:
            doc_ref.create(data)
            created = dict(data)
            created['id'] = document_id
            created['_doc_id'] = document_id
            return True, created, None
        except AlreadyExists:
            return await self.get_document(collection_name, document_id)
        except Exception as e:
            logger.error(f"Error conditionally creating {document_id} in {collection_name}: {str(e)}")
            return False, None, str(e)

    async def update_document(
        self,
        collection_name: str,
        document_id: str,
        data: Dict[str, Any],
    ) -> Tuple[bool, Optional[str]]:
        """Merge fields into an existing document"""
        try:
            self._collection(collection_name).document(document_id).update(data)
            return True, None
        except Exception as e:
            logger.error(f"Error updating document {document_id} in {collection_name}: {str(e)}")
            return False, str(e)


database_service = DatabaseService()
