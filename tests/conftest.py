"""Pytest fixtures for HR360 screening tests."""
import asyncio
import copy
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
from elasticsearch import NotFoundError

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from app.core.elasticsearch import init_indices
from app.core.email_inbox import EmailAttachment, InboundEmail
from app.core.storage import save_user
from app.models.schemas import User, UserRole
from app.utils.resume_parser import DOCX, PDF


# =============================================================================
# IN-MEMORY ELASTICSEARCH
# =============================================================================


def _not_found(index: str, doc_id: str | None = None) -> NotFoundError:
    return NotFoundError(
        f"{index}/{doc_id} not found",
        meta=SimpleNamespace(status=404),
        body={"found": False},
    )


def _field_matches(value, expected) -> bool:
    if isinstance(expected, dict):
        expected = expected.get("value")
    if isinstance(value, list):
        return expected in value
    return value == expected


def _matches(doc: dict, query: dict) -> bool:
    if not query or "match_all" in query:
        return True
    if "term" in query:
        (field, expected), = query["term"].items()
        return _field_matches(doc.get(field), expected)
    if "terms" in query:
        (field, options), = query["terms"].items()
        return any(_field_matches(doc.get(field), option) for option in options)
    if "bool" in query:
        clauses = query["bool"].get("filter", []) + query["bool"].get("must", [])
        return all(_matches(doc, clause) for clause in clauses)
    raise NotImplementedError(f"Unsupported fake query: {query}")


class FakeIndices:
    def __init__(self, store: dict):
        self._store = store

    async def exists(self, index):
        return index in self._store

    async def create(self, index, body=None):
        self._store.setdefault(index, {})

    async def delete(self, index):
        self._store.pop(index, None)


class FakeElasticsearch:
    """Just enough of AsyncElasticsearch for the storage layer."""

    def __init__(self):
        self.store: dict[str, dict[str, dict]] = {}
        self.indices = FakeIndices(self.store)
        self.closed = False

    def docs(self, index: str) -> list[dict]:
        return list(self.store.get(index, {}).values())

    async def info(self):
        return {"version": {"number": "8.13.0"}}

    async def index(self, index, id, document, refresh=None):
        self.store.setdefault(index, {})[id] = copy.deepcopy(document)
        return {"_id": id, "result": "created"}

    async def get(self, index, id):
        try:
            source = self.store[index][id]
        except KeyError:
            raise _not_found(index, id)
        return {"_id": id, "found": True, "_source": copy.deepcopy(source)}

    async def update(self, index, id, doc, refresh=None):
        try:
            self.store[index][id].update(copy.deepcopy(doc))
        except KeyError:
            raise _not_found(index, id)
        return {"_id": id, "result": "updated"}

    async def delete(self, index, id, refresh=None):
        try:
            del self.store[index][id]
        except KeyError:
            raise _not_found(index, id)

    async def search(self, index, body):
        if index not in self.store:
            raise _not_found(index)
        hits = [
            (doc_id, doc) for doc_id, doc in self.store[index].items()
            if _matches(doc, body.get("query"))
        ]
        for clause in reversed(body.get("sort", [])):
            (field, opts), = clause.items()
            hits.sort(key=lambda h: (h[1].get(field) is None, h[1].get(field) or ""),
                      reverse=opts.get("order") == "desc")
        hits = hits[: body.get("size", 10)]
        return {
            "hits": {
                "total": {"value": len(hits)},
                "hits": [{"_id": doc_id, "_source": copy.deepcopy(doc)} for doc_id, doc in hits],
            }
        }

    async def count(self, index, body=None):
        if index not in self.store:
            raise _not_found(index)
        query = (body or {}).get("query")
        return {"count": sum(1 for doc in self.store[index].values() if _matches(doc, query))}

    async def close(self):
        self.closed = True


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def es():
    """Fresh in-memory ES with all indices created."""
    fake = FakeElasticsearch()
    asyncio.run(init_indices(fake))
    return fake


@pytest.fixture
def hr_user(es):
    """An HR user who receives pipeline notifications."""
    user = User(id="hr-1", email="hr@hr360.com", first_name="Sarah", last_name="Johnson", role=UserRole.HR)
    asyncio.run(save_user(es, user))
    return user


@pytest.fixture
def sample_resume_text():
    return (
        "Jane Doe\n"
        "jane.doe@example.com | (555) 123-4567\n"
        "5 years experience building web applications with React, JavaScript and Node.js.\n"
        "Led a project team of four developers.\n"
        "Bachelor of Science, State University"
    )


def make_docx(*paragraphs: str) -> bytes:
    """Build a real .docx file in memory."""
    import io
    from docx import Document

    doc = Document()
    for text in paragraphs:
        doc.add_paragraph(text)
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


def make_email(message_id="<msg-1@example.com>", attachments=None, **kwargs) -> InboundEmail:
    defaults = dict(
        message_id=message_id,
        uid="1",
        sender="Jane Doe <jane.doe@example.com>",
        subject="Application for React Developer",
        date=None,
        body="Please find my CV attached.",
    )
    defaults.update(kwargs)
    return InboundEmail(attachments=attachments or [], **defaults)


def docx_attachment(filename="jane_doe.docx", *paragraphs: str) -> EmailAttachment:
    content = make_docx(*(paragraphs or (
        "Jane Doe",
        "jane.doe@example.com",
        "5 years experience with React and JavaScript. Led a project team.",
    )))
    return EmailAttachment(filename=filename, content_type=DOCX, size=len(content), content=content)


def broken_pdf_attachment(filename="broken.pdf") -> EmailAttachment:
    content = b"%PDF-1.4 this is not really a pdf"
    return EmailAttachment(filename=filename, content_type=PDF, size=len(content), content=content)
