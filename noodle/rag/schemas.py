"""Structured models for knowledge-base documents, chunks and provenance."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SourceKind(str, Enum):
    WEB = "web"
    MAP = "map"
    FILE = "file"


class SourceRef(BaseModel):
    """One provenance record attached to a generated answer."""

    model_config = ConfigDict(frozen=True)

    uri: str
    title: str
    kind: SourceKind = SourceKind.WEB


class RAGDocument(BaseModel):
    """Manifest record for one uploaded source file."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    mime_type: str = Field(default="text/plain")
    size_bytes: int
    uploaded_at: float = Field(description="Unix timestamp of the upload")
    chunk_count: int


class RAGChunk(BaseModel):
    """One embedded window of a document, owned by the vector index."""

    model_config = ConfigDict(frozen=True)

    doc_id: str
    text: str
    embedding: list[float]


class ScoredChunk(BaseModel):
    """A search hit: the stored chunk, its similarity and its index position."""

    chunk: RAGChunk
    score: float
    position: int


class RetrievalResult(BaseModel):
    """Context block and sources returned by a knowledge-base search."""

    context: str = ""
    sources: list[SourceRef] = Field(default_factory=list)
