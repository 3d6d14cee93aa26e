"""
Shared pytest fixtures: in-memory Firestore and Storage doubles and a
testing app wired to them.
"""

import copy
import itertools
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from firebase_admin import firestore

from app import create_app

ADMIN_TOKEN = 'admin-id-token'
ADMIN_CLAIMS = {'uid': 'admin-uid', 'email': 'admin@bloominfive.blog'}

_OPS = {
    '==': lambda a, b: a == b,
    '!=': lambda a, b: a != b,
    '<': lambda a, b: a < b,
    '<=': lambda a, b: a <= b,
    '>': lambda a, b: a > b,
    '>=': lambda a, b: a >= b,
    'in': lambda a, b: a in b,
    'array_contains': lambda a, b: b in (a or []),
}


class FakeSnapshot:
    def __init__(self, reference, data):
        self.reference = reference
        self.id = reference.id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None

    def get(self, field):
        return (self._data or {}).get(field)


class FakeDocumentReference:
    def __init__(self, collection, doc_id):
        self._collection = collection
        self.id = doc_id

    @property
    def path(self):
        return f"{self._collection.name}/{self.id}"

    def get(self):
        return FakeSnapshot(self, self._collection.docs.get(self.id))

    def set(self, data, merge=False):
        data = self._collection.db.resolve(data)
        if merge and self.id in self._collection.docs:
            self._collection.docs[self.id].update(data)
        else:
            self._collection.docs[self.id] = data

    def update(self, data):
        if self.id not in self._collection.docs:
            raise KeyError(f"No document to update: {self.path}")
        self._collection.docs[self.id].update(self._collection.db.resolve(data))

    def delete(self):
        self._collection.docs.pop(self.id, None)


class FakeQuery:
    def __init__(self, collection, filters=(), orders=(), limit_to=None):
        self._collection = collection
        self._filters = tuple(filters)
        self._orders = tuple(orders)
        self._limit = limit_to

    def where(self, field_path=None, op_string=None, value=None, *, filter=None):
        if filter is not None:
            field_path, op_string, value = filter.field_path, filter.op_string, filter.value
        return FakeQuery(self._collection, self._filters + ((field_path, op_string, value),),
                         self._orders, self._limit)

    def order_by(self, field_path, direction='ASCENDING'):
        return FakeQuery(self._collection, self._filters,
                         self._orders + ((field_path, direction),), self._limit)

    def limit(self, count):
        return FakeQuery(self._collection, self._filters, self._orders, count)

    def stream(self):
        if self._collection.db.fail_queries:
            raise RuntimeError('Firestore unavailable')

        rows = []
        for doc_id, data in self._collection.docs.items():
            if all(field in data and _OPS[op](data[field], value)
                   for field, op, value in self._filters):
                rows.append((doc_id, data))

        for field, direction in reversed(self._orders):
            rows = [row for row in rows if field in row[1]]
            rows.sort(key=lambda row: row[1][field], reverse=(direction == 'DESCENDING'))

        if self._limit is not None:
            rows = rows[:self._limit]

        for doc_id, _ in rows:
            yield self._collection.document(doc_id).get()

    def get(self):
        return list(self.stream())


class FakeWatch:
    def __init__(self):
        self.unsubscribed = False

    def unsubscribe(self):
        self.unsubscribed = True


class FakeCollection(FakeQuery):
    def __init__(self, db, name):
        self.db = db
        self.name = name
        self.docs = {}
        self.listeners = []
        super().__init__(self)

    def document(self, doc_id=None):
        if doc_id is not None and '/' in doc_id:
            raise ValueError('A document must have an even number of path elements')
        return FakeDocumentReference(self, doc_id or uuid.uuid4().hex[:20])

    def add(self, data):
        ref = self.document()
        ref.set(data)
        return self.db.now(), ref

    def on_snapshot(self, callback):
        self.listeners.append(callback)
        return FakeWatch()


class FakeFirestore:
    """
    Enough of google.cloud.firestore.Client for the stores

    ``SERVER_TIMESTAMP`` sentinels are replaced with a clock that moves
    forward one second per write so ordering by write time is stable.
    """

    def __init__(self):
        self.collections = {}
        self.fail_queries = False
        self._ticks = itertools.count()
        self._epoch = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def collection(self, name):
        if name not in self.collections:
            self.collections[name] = FakeCollection(self, name)
        return self.collections[name]

    def now(self):
        return self._epoch + timedelta(seconds=next(self._ticks))

    def resolve(self, data):
        resolved = {}
        for key, value in data.items():
            resolved[key] = self.now() if value is firestore.SERVER_TIMESTAMP else value
        return resolved

    def data(self, collection, doc_id):
        return self.collection(collection).docs.get(doc_id)


class FakeBlob:
    def __init__(self, bucket, name):
        self.bucket = bucket
        self.name = name
        self.content = None
        self.content_type = None
        self.public = False

    def upload_from_file(self, stream, content_type=None):
        self.content = stream.read()
        self.content_type = content_type

    def make_public(self):
        self.public = True

    @property
    def public_url(self):
        return f"https://storage.googleapis.com/{self.bucket.name}/{self.name}"


class FakeBucket:
    def __init__(self, name='test-bucket.appspot.com'):
        self.name = name
        self.blobs = {}

    def blob(self, name):
        blob = self.blobs.setdefault(name, FakeBlob(self, name))
        return blob


def fake_verify_id_token(id_token, *args, **kwargs):
    if id_token == ADMIN_TOKEN:
        return dict(ADMIN_CLAIMS)
    if id_token == 'reader-id-token':
        return {'uid': 'reader-uid', 'email': 'reader@example.com'}
    raise ValueError('Token signature invalid')


@pytest.fixture
def db():
    return FakeFirestore()


@pytest.fixture
def bucket():
    return FakeBucket()


@pytest.fixture
def app(db, bucket):
    app = create_app('testing',
                     firestore_client=db,
                     storage_bucket=bucket,
                     verify_id_token=fake_verify_id_token)
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(app):
    client = app.test_client()
    response = client.post('/api/auth/login', json={'id_token': ADMIN_TOKEN})
    assert response.status_code == 200
    return client


@pytest.fixture
def now():
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
