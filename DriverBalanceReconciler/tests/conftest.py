"""
Shared fixtures: an in-memory stand-in for the Firestore client.

Only the calls the reconciler makes are supported: collection/document
access, where(filter=FieldFilter(...)), order_by, limit, stream, get,
set and update with dotted field paths.
"""

import copy

import pytest
from google.api_core.exceptions import FailedPrecondition, ServiceUnavailable
from google.cloud.firestore_v1.types import StructuredQuery

from config import firebase_config

_MISSING = object()

# FieldFilter turns "== None" / "!= None" into unary operators
_IS_NULL = StructuredQuery.UnaryFilter.Operator.IS_NULL
_IS_NOT_NULL = StructuredQuery.UnaryFilter.Operator.IS_NOT_NULL


def _lookup(data: dict, path: str):
    value = data
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data) if self._data is not None else None


class FakeDocument:
    def __init__(self, store, collection, doc_id):
        self._store = store
        self._collection = collection
        self.id = doc_id

    def get(self):
        return FakeSnapshot(self.id, self._store.docs(self._collection).get(self.id))

    def set(self, data):
        self._store.docs(self._collection)[self.id] = copy.deepcopy(data)

    def update(self, changes):
        self._store.check_write(self._collection, self.id)
        docs = self._store.docs(self._collection)
        if self.id not in docs:
            raise KeyError(f"No document to update: {self._collection}/{self.id}")
        self._store.writes.append((self._collection, self.id, dict(changes)))
        for path, value in changes.items():
            target = docs[self.id]
            parts = path.split(".")
            for part in parts[:-1]:
                target = target.setdefault(part, {})
            target[parts[-1]] = value


class FakeQuery:
    def __init__(self, store, collection, filters=(), order=None, limit=None):
        self._store = store
        self._collection = collection
        self._filters = list(filters)
        self._order = order
        self._limit = limit

    def where(self, filter):
        return FakeQuery(
            self._store, self._collection,
            self._filters + [(filter.field_path, filter.op_string, filter.value)],
            self._order, self._limit
        )

    def order_by(self, field_path, direction="ASCENDING"):
        return FakeQuery(
            self._store, self._collection, self._filters,
            (field_path, direction), self._limit
        )

    def limit(self, count):
        return FakeQuery(self._store, self._collection, self._filters, self._order, count)

    def _matches(self, data):
        for path, op, expected in self._filters:
            actual = _lookup(data, path)
            if op == "==":
                if actual is _MISSING or actual != expected:
                    return False
            elif op == _IS_NULL:
                if actual is not _MISSING and actual is not None:
                    return False
            elif op in ("!=", _IS_NOT_NULL):
                if actual is _MISSING or actual is None or actual == expected:
                    return False
            else:
                raise NotImplementedError(op)
        return True

    def stream(self):
        self._store.check_query(self._collection, self._filters, self._order)

        results = [
            FakeSnapshot(doc_id, data)
            for doc_id, data in self._store.docs(self._collection).items()
            if self._matches(data)
        ]
        if self._order is not None:
            field_path, direction = self._order
            results = [s for s in results if _lookup(s._data, field_path) is not _MISSING]
            results.sort(
                key=lambda s: _lookup(s._data, field_path),
                reverse=direction == "DESCENDING"
            )
        if self._limit is not None:
            results = results[:self._limit]
        return iter(results)


class FakeCollection(FakeQuery):
    def document(self, doc_id):
        return FakeDocument(self._store, self._collection, doc_id)


class FakeFirestore:
    """Dict-backed Firestore client with failure injection."""

    def __init__(self):
        self._collections = {}
        self.writes = []
        self.failing_driver_ids = set()
        self.failing_writes = set()
        self.fail_user_queries = False
        self.fail_ordered_queries = False

    def docs(self, collection):
        return self._collections.setdefault(collection, {})

    def collection(self, name):
        return FakeCollection(self, name)

    def add(self, collection, doc_id, data):
        self.docs(collection)[doc_id] = copy.deepcopy(data)

    def check_query(self, collection, filters, order):
        if order is not None and self.fail_ordered_queries:
            raise FailedPrecondition("The query requires an index.")
        if collection == "users" and self.fail_user_queries:
            raise ServiceUnavailable("users query unavailable")
        for path, _, value in filters:
            if path == "motoristaId" and value in self.failing_driver_ids:
                raise ServiceUnavailable(f"rides query failed for {value}")

    def check_write(self, collection, doc_id):
        if doc_id in self.failing_writes:
            raise ServiceUnavailable(f"write failed for {collection}/{doc_id}")


@pytest.fixture
def fake_db():
    return FakeFirestore()


@pytest.fixture
def shared_db(fake_db, monkeypatch):
    """Make get_db() return the fake client everywhere."""
    monkeypatch.setattr(firebase_config, "_db", fake_db)
    return fake_db


def add_driver(db, uid, balance=0, debt=0, email=None, perfil="motorista", registered=None):
    data = {"perfil": perfil, "motoristaData": {"balance": balance, "debt": debt}}
    if email:
        data["email"] = email
    if registered is not None:
        data["motoristaData"]["isRegistered"] = registered
    db.add("users", uid, data)


def add_ride(db, ride_id, driver_id, total, payment="cash", hora_fim=None, status="finalizada", **extra):
    data = {"motoristaId": driver_id, "status": status, "valor_total": total}
    if payment is not None:
        data["tipo_pagamento"] = payment
    if hora_fim is not None:
        data["horaFim"] = hora_fim
    data.update(extra)
    db.add("rides", ride_id, data)
