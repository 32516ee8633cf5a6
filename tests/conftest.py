from __future__ import annotations

import itertools
import json
import re
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytest
from google.api_core.exceptions import Conflict

from firebase_service import FirebaseService
from prompt_dispatcher import ModelBackend


class FakeSnapshot:
    def __init__(self, doc_id: str, data: Optional[Dict[str, Any]]):
        self.id = doc_id
        self._data = data

    @property
    def exists(self) -> bool:
        return self._data is not None

    def to_dict(self) -> Optional[Dict[str, Any]]:
        return dict(self._data) if self._data is not None else None


class FakeDocumentRef:
    def __init__(self, db: "FakeFirestore", path: str):
        self._db = db
        self.path = path
        self.id = path.rsplit("/", 1)[-1]

    def get(self) -> FakeSnapshot:
        return FakeSnapshot(self.id, self._db.docs.get(self.path))

    def create(self, data: Dict[str, Any]) -> None:
        if self.path in self._db.docs:
            raise Conflict(f"Document already exists: {self.path}")
        self._db.write(self.path, dict(data))

    def set(self, data: Dict[str, Any], merge: bool = False) -> None:
        existing = self._db.docs.get(self.path)
        if merge and existing is not None:
            data = {**existing, **data}
        self._db.write(self.path, dict(data))

    def collection(self, name: str) -> "FakeCollectionRef":
        return FakeCollectionRef(self._db, f"{self.path}/{name}")


class FakeQuery:
    def __init__(self, collection: "FakeCollectionRef", field: Optional[str] = None, descending: bool = False):
        self._collection = collection
        self._field = field
        self._descending = descending
        self._limit: Optional[int] = None

    def order_by(self, field: str, direction: str = "ASCENDING") -> "FakeQuery":
        return FakeQuery(self._collection, field, direction == "DESCENDING")

    def limit(self, count: int) -> "FakeQuery":
        self._limit = count
        return self

    def stream(self):
        docs = self._collection._snapshots()
        if self._field:
            def sort_key(pair):
                snap, seq = pair
                value = snap.to_dict().get(self._field)
                if isinstance(value, (int, float, str, datetime)):
                    return value
                # server timestamp sentinels: fall back to write order
                return seq
            docs = sorted(docs, key=sort_key, reverse=self._descending)
        snaps = [snap for snap, _ in docs]
        return iter(snaps[: self._limit] if self._limit is not None else snaps)


class FakeCollectionRef:
    def __init__(self, db: "FakeFirestore", path: str):
        self._db = db
        self.path = path

    def document(self, doc_id: Optional[str] = None) -> FakeDocumentRef:
        if doc_id is None:
            doc_id = uuid.uuid4().hex[:20]
        # same id rules as the real client
        if "/" in doc_id:
            raise ValueError("A document must have an even number of path elements")
        if doc_id in (".", "..") or re.fullmatch(r"__.*__", doc_id):
            raise ValueError(f"Invalid document id: {doc_id!r}")
        return FakeDocumentRef(self._db, f"{self.path}/{doc_id}")

    def add(self, data: Dict[str, Any]):
        ref = self.document()
        ref.set(data)
        return datetime.now(), ref

    def order_by(self, field: str, direction: str = "ASCENDING") -> FakeQuery:
        return FakeQuery(self).order_by(field, direction)

    def limit(self, count: int) -> FakeQuery:
        return FakeQuery(self).limit(count)

    def stream(self):
        return FakeQuery(self).stream()

    def _snapshots(self):
        prefix = self.path + "/"
        return [
            (FakeSnapshot(path[len(prefix):], data), self._db.sequence[path])
            for path, data in self._db.docs.items()
            if path.startswith(prefix) and "/" not in path[len(prefix):]
        ]


class FakeBatch:
    def __init__(self, db: "FakeFirestore"):
        self._db = db
        self._ops: List[Any] = []

    def set(self, ref: FakeDocumentRef, data: Dict[str, Any], merge: bool = False) -> None:
        self._ops.append((ref, data, merge))

    def commit(self) -> None:
        self._db.commits += 1
        for ref, data, merge in self._ops:
            ref.set(data, merge=merge)


class FakeFirestore:
    """In-memory stand-in for a Firestore client: documents keyed by path."""

    def __init__(self):
        self.docs: Dict[str, Dict[str, Any]] = {}
        self.sequence: Dict[str, int] = {}
        self.commits = 0
        self._counter = itertools.count()

    def write(self, path: str, data: Dict[str, Any]) -> None:
        self.docs[path] = data
        self.sequence[path] = next(self._counter)

    def collection(self, name: str) -> FakeCollectionRef:
        return FakeCollectionRef(self, name)

    def batch(self) -> FakeBatch:
        return FakeBatch(self)

    def ids(self, collection: str) -> List[str]:
        return sorted(snap.id for snap, _ in FakeCollectionRef(self, collection)._snapshots())


class ScriptedBackend(ModelBackend):
    """Model backend whose responses are scripted per model name.

    Each script entry is either a response string or an exception to raise.
    Models without a script answer with ``default``.
    """

    def __init__(self, script: Optional[Dict[str, List[Any]]] = None, default: Any = None):
        self.script = {model: list(steps) for model, steps in (script or {}).items()}
        self.default = default
        self.calls: List[str] = []
        self.prompts: List[str] = []

    async def generate(self, model, prompt, output_model):
        self.calls.append(model)
        self.prompts.append(prompt)
        steps = self.script.get(model)
        step = steps.pop(0) if steps else self.default
        if isinstance(step, BaseException):
            raise step
        if step is None:
            raise AssertionError(f"No scripted response for model {model}")
        return step


def as_json(payload: Dict[str, Any]) -> str:
    return json.dumps(payload)


@pytest.fixture
def fake_db() -> FakeFirestore:
    return FakeFirestore()


@pytest.fixture
def firebase(fake_db, monkeypatch) -> FirebaseService:
    import firebase_service

    service = FirebaseService(client=fake_db)
    monkeypatch.setattr(firebase_service, "_firebase_service", service)
    return service
