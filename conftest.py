import asyncio
import copy
import itertools

import pytest

from residence_chat.core.clock import ServerClock
from residence_chat.database.collections import COLLECTIONS
from residence_chat.services.attachment_service import AttachmentService
from residence_chat.services.community_feed_service import CommunityFeedService
from residence_chat.services.conversation_directory import ConversationDirectory
from residence_chat.services.message_log import MessageLog
from residence_chat.services.messaging_service import MessagingService
from residence_chat.services.profile_service import ProfileService
from residence_chat.services.subscription_service import SubscriptionHub


def _sort_key(value):
    return (value is None, value)


def _after(data, cursor, order_by):
    """Whether a document sorts strictly after the cursor position"""
    for field, direction in order_by or []:
        current, boundary = _sort_key(data.get(field)), _sort_key(cursor.get(field))
        if current == boundary:
            continue
        return current > boundary if direction == 'asc' else current < boundary
    return False


class FakeDB:
    """In-memory stand-in for DatabaseService with the same tuple contract"""

    def __init__(self):
        self.collections = {}
        self.failing = set()
        self._ids = itertools.count(1)

    def seed(self, collection, document_id, data):
        self.collections.setdefault(collection, {})[document_id] = dict(data)

    def documents(self, collection):
        return list(self.collections.get(collection, {}).values())

    def _with_id(self, document_id, data):
        result = copy.deepcopy(data)
        result['id'] = document_id
        result['_doc_id'] = document_id
        return result

    async def get_document(self, collection, document_id):
        if 'get_document' in self.failing:
            return False, None, "store offline"
        data = self.collections.get(collection, {}).get(document_id)
        if data is None:
            return False, None, f"Document {document_id} not found in {collection}"
        return True, self._with_id(document_id, data), None

    async def query_documents(self, collection, filters=None, order_by=None, limit=None, start_after=None):
        if 'query_documents' in self.failing:
            return False, [], "store offline"

        results = []
        for document_id, data in self.collections.get(collection, {}).items():
            if all(self._matches(data, *f) for f in filters or []):
                results.append(self._with_id(document_id, data))
        if start_after:
            results = [d for d in results if _after(d, start_after, order_by)]

        for field, direction in reversed(order_by or []):
            results.sort(key=lambda d: _sort_key(d.get(field)), reverse=(direction == 'desc'))
        if limit:
            results = results[:limit]

        # Let concurrent callers interleave between read and write
        await asyncio.sleep(0)
        return True, results, None

    @staticmethod
    def _matches(data, field, op, value):
        current = data.get(field)
        if op == 'array_contains':
            return value in (current or [])
        if op == '==':
            return current == value
        if op == '<':
            return current is not None and current < value
        if op == '>':
            return current is not None and current > value
        raise ValueError(f"Unsupported operator {op}")

    async def create_document(self, collection, data, document_id=None):
        if 'create_document' in self.failing:
            return False, None, "store offline"
        document_id = document_id or f"doc_{next(self._ids)}"
        self.collections.setdefault(collection, {})[document_id] = copy.deepcopy(data)
        return True, document_id, None

    async def create_document_if_absent(self, collection, document_id, data):
        if 'create_document' in self.failing:
            return False, None, "store offline"
        existing = self.collections.setdefault(collection, {}).get(document_id)
        if existing is not None:
            return True, self._with_id(document_id, existing), None
        self.collections[collection][document_id] = copy.deepcopy(data)
        return True, self._with_id(document_id, data), None

    async def update_document(self, collection, document_id, data):
        if 'update_document' in self.failing:
            return False, "store offline"
        existing = self.collections.get(collection, {}).get(document_id)
        if existing is None:
            return False, f"Document {document_id} not found in {collection}"
        existing.update(copy.deepcopy(data))
        return True, None


class FakeBlob:
    def __init__(self, bucket, path):
        self.bucket = bucket
        self.path = path
        self.metadata = None

    def upload_from_string(self, data, content_type=None):
        if self.bucket.fail_uploads:
            raise ConnectionError("bucket unreachable")
        self.bucket.uploads[self.path] = {
            'data': data,
            'content_type': content_type,
            'metadata': self.metadata,
        }


class FakeBucket:
    def __init__(self, name="residence-chat-test.appspot.com"):
        self.name = name
        self.uploads = {}
        self.fail_uploads = False

    def blob(self, path):
        return FakeBlob(self, path)


USERS = {
    'res_1': {'firstName': 'Amina', 'lastName': 'Benali', 'role': 'resident'},
    'res_2': {'first_name': 'Karim', 'last_name': 'Haddad', 'role': 'resident'},
    'staff_1': {'first_name': 'Youssef', 'last_name': 'Alaoui', 'role': 'gardien'},
    'staff_2': {'first_name': 'Salma', 'last_name': 'Idrissi', 'role': 'syndic'},
    'syndic_noname': {'role': 'syndic'},
}


@pytest.fixture
def fake_db():
    db = FakeDB()
    for user_id, profile in USERS.items():
        db.seed(COLLECTIONS['users'], user_id, profile)
    return db


@pytest.fixture
def hub():
    return SubscriptionHub()


@pytest.fixture
def clock():
    return ServerClock()


@pytest.fixture
def bucket():
    return FakeBucket()


@pytest.fixture
def attachments(bucket):
    return AttachmentService(bucket=bucket)


@pytest.fixture
def profiles(fake_db):
    return ProfileService(db=fake_db)


@pytest.fixture
def directory(fake_db, profiles, hub, clock):
    return ConversationDirectory(db=fake_db, profiles=profiles, hub=hub, clock=clock, canonical_ids=False)


@pytest.fixture
def message_log(fake_db, hub, clock, profiles):
    return MessageLog(db=fake_db, hub=hub, clock=clock, profiles=profiles)


@pytest.fixture
def messaging(directory, message_log, attachments, profiles):
    return MessagingService(directory=directory, log=message_log, attachments=attachments, profiles=profiles)


@pytest.fixture
def community(fake_db, hub, clock, attachments):
    return CommunityFeedService(db=fake_db, hub=hub, clock=clock, attachments=attachments)
