"""Knowledge-base service: document lifecycle and similarity search.

Responsibilities:
- Validate uploads (size limit, chunk window) before any work starts.
- Chunk, embed sequentially, then commit manifest and chunks together.
- Answer queries with a context block plus one file source per hit.

Usage:
`python -m noodle.rag.retrieval --file notes.txt --query "What changed?"`
"""

from __future__ import annotations

import argparse
import asyncio
import json
import mimetypes
import time
from collections.abc import Callable
from pathlib import Path

from noodle.config import Settings, settings
from noodle.data.chunking import chunk_text, validate_chunking
from noodle.errors import ValidationError
from noodle.rag.embedder import EmbeddingBackend, get_embedder
from noodle.rag.schemas import RAGDocument, RetrievalResult, SourceKind, SourceRef
from noodle.rag.vector_index import VectorIndex
from noodle.utils.ids import new_id
from noodle.utils.logging import configure_logging, get_logger
from noodle.utils.tracing import traceable

logger = get_logger(__name__)

CONTENT_SEPARATOR = "\n"
CONTEXT_SEPARATOR = "\n\n...\n\n"

ProgressCallback = Callable[[int], None]


class RetrievalService:
    """Owns the document manifest and the vector index behind it."""

    def __init__(
        self,
        config: Settings,
        embedder: EmbeddingBackend,
        index: VectorIndex | None = None,
    ) -> None:
        self.config = config
        self.embedder = embedder
        self.index = index or VectorIndex()
        self._documents: list[RAGDocument] = []

    def list_documents(self) -> list[RAGDocument]:
        return list(self._documents)

    def get_document(self, doc_id: str) -> RAGDocument | None:
        for doc in self._documents:
            if doc.id == doc_id:
                return doc
        return None

    async def add_document(
        self,
        name: str,
        data: bytes,
        *,
        mime_type: str = "text/plain",
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> RAGDocument:
        """Chunk, embed and index one uploaded file.

        Chunks are staged locally and committed only after every embedding
        call succeeded; an `EmbeddingError` mid-way leaves the knowledge base
        exactly as it was.
        """

        chunk_size = self.config.rag_chunk_size if chunk_size is None else chunk_size
        chunk_overlap = self.config.rag_chunk_overlap if chunk_overlap is None else chunk_overlap

        if len(data) > self.config.rag_max_file_bytes:
            size_mb = len(data) / 1024 / 1024
            max_mb = self.config.rag_max_file_bytes / 1024 / 1024
            raise ValidationError(f"File too large ({size_mb:.2f}MB). Max size is {max_mb:.0f}MB.")
        validate_chunking(chunk_size, chunk_overlap)

        text = data.decode("utf-8", errors="replace")
        windows = chunk_text(text, chunk_size, chunk_overlap)
        doc_id = new_id("doc")

        logger.info(
            "Indexing document",
            extra={"context": {"doc_id": doc_id, "name": name, "chunks": len(windows)}},
        )

        if on_progress:
            on_progress(0)

        staged: list[tuple[str, list[float]]] = []
        try:
            for processed, window in enumerate(windows, start=1):
                staged.append((window, await self.embedder.embed(window)))
                if on_progress:
                    on_progress(round(processed / len(windows) * 100))
        except Exception:
            logger.error(
                "Indexing aborted; discarding staged chunks",
                extra={"context": {"doc_id": doc_id, "name": name, "staged": len(staged)}},
            )
            raise

        document = RAGDocument(
            id=doc_id,
            name=name,
            mime_type=mime_type,
            size_bytes=len(data),
            uploaded_at=time.time(),
            chunk_count=len(staged),
        )
        self.index.add(doc_id, staged)
        self._documents = [*self._documents, document]

        logger.info(
            "Document indexed",
            extra={"context": {"doc_id": doc_id, "chunks": document.chunk_count}},
        )
        return document

    async def add_file(self, path: str | Path, **kwargs) -> RAGDocument:
        """Read a file from disk and index it under its file name."""

        file_path = Path(path)
        mime_type = mimetypes.guess_type(file_path.name)[0] or "text/plain"
        data = await asyncio.to_thread(file_path.read_bytes)
        return await self.add_document(file_path.name, data, mime_type=mime_type, **kwargs)

    def remove_document(self, doc_id: str) -> None:
        """Remove a document and all of its chunks; unknown ids are ignored."""

        removed = self.index.remove(doc_id)
        self._documents = [doc for doc in self._documents if doc.id != doc_id]
        logger.info("Document removed", extra={"context": {"doc_id": doc_id, "chunks": removed}})

    def get_document_content(self, doc_id: str) -> str | None:
        """Best-effort document text rebuilt from its chunks.

        Chunks are joined verbatim, so text inside overlap windows appears
        twice when the document was indexed with `chunk_overlap > 0`.
        Returns `None` for unknown or removed documents.
        """

        chunks = self.index.chunks_for(doc_id)
        if not chunks:
            return None
        return CONTENT_SEPARATOR.join(chunk.text for chunk in chunks)

    @traceable(name="knowledge_base_search", run_type="retriever")
    async def search(self, query: str, top_k: int | None = None) -> RetrievalResult:
        """Embed `query` and return the best chunks as context plus sources."""

        if len(self.index) == 0:
            return RetrievalResult()

        top_k = self.config.rag_top_k if top_k is None else top_k
        query_embedding = await self.embedder.embed(query)
        hits = self.index.search(query_embedding, top_k)

        sources: list[SourceRef] = []
        for hit in hits:
            doc = self.get_document(hit.chunk.doc_id)
            title = f"{doc.name} (Similarity: {hit.score:.2f})" if doc else "Local Document"
            sources.append(
                SourceRef(
                    uri=f"kb://{hit.chunk.doc_id}/{hit.position}",
                    title=title,
                    kind=SourceKind.FILE,
                )
            )

        logger.info(
            "Knowledge base search completed",
            extra={"context": {"query": query, "hits": len(hits), "top_k": top_k}},
        )
        return RetrievalResult(
            context=CONTEXT_SEPARATOR.join(hit.chunk.text for hit in hits),
            sources=sources,
        )


async def _run_cli(args: argparse.Namespace) -> dict[str, object]:
    embedder, model_name = get_embedder(settings)
    service = RetrievalService(settings, embedder)

    documents = []
    for path in args.file:
        doc = await service.add_file(path, chunk_size=args.chunk_size, chunk_overlap=args.chunk_overlap)
        documents.append(doc.model_dump())

    result = await service.search(args.query, args.top_k) if args.query else RetrievalResult()
    return {
        "embedding_model": model_name,
        "documents": documents,
        "context": result.context,
        "sources": [source.model_dump(mode="json") for source in result.sources],
    }


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Index local files and query the knowledge base")
    parser.add_argument("--file", action="append", default=[], required=True)
    parser.add_argument("--query", type=str, default="")
    parser.add_argument("--top-k", type=int, default=settings.rag_top_k)
    parser.add_argument("--chunk-size", type=int, default=settings.rag_chunk_size)
    parser.add_argument("--chunk-overlap", type=int, default=settings.rag_chunk_overlap)
    parser.add_argument("--debug", type=int, default=0)
    return parser


def main() -> None:
    args = _build_arg_parser().parse_args()
    configure_logging(debug=bool(args.debug))

    print(json.dumps(asyncio.run(_run_cli(args)), indent=2, ensure_ascii=True))


if __name__ == "__main__":
    main()
