"""Shared fixtures for the Nova test suite."""

import json
import os
import tempfile

# Keep the default database and log files out of the checkout
_scratch = tempfile.mkdtemp(prefix="nova-tests-")
os.environ.setdefault("NOVA_DATA_DIR", os.path.join(_scratch, "data"))
os.environ.setdefault("NOVA_LOG_DIR", os.path.join(_scratch, "logs"))

import pytest

from xhsnova.database import Database


def sse(payload) -> str:
    """One upstream `data:` frame."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


class FakeUpstream:
    """Stands in for an open upstream response: yields canned chunks, records close()."""

    service = "Fake"

    def __init__(self, chunks, error: Exception = None):
        self._chunks = list(chunks)
        self._error = error
        self.pulled = 0
        self.closed = False

    async def chunks(self):
        for chunk in self._chunks:
            self.pulled += 1
            yield chunk.encode("utf-8") if isinstance(chunk, str) else chunk
        if self._error is not None:
            raise self._error

    async def close(self):
        self.closed = True


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "nova.db")
    database.initialize_schema()
    return database


@pytest.fixture
def project(db):
    return db.create_project("春季护肤笔记", user_id="user-1")
