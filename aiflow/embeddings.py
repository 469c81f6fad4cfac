"""Document embedding creation and similarity search."""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_EMBEDDING_BATCH_SIZE,
    DEFAULT_EMBEDDING_MODEL,
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_SIMILARITY_THRESHOLD,
    EMBEDDINGS_TABLE,
)
from .gateways.base import EmbeddingRequest, ModelGateway
from .persistence import Filter, StorageBackend
from .persistence.models import EmbeddingMatch

logger = logging.getLogger(__name__)

SENTENCE_END = re.compile(r"[.!?]\s+")


class Document(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class EmbeddingResult(BaseModel):
    id: str
    embedding: List[float]
    metadata: Dict[str, Any] = Field(default_factory=dict)


class EmbeddingService:
    """Embed documents through a model gateway and store them as rows."""

    def __init__(
        self,
        gateway: ModelGateway,
        storage: StorageBackend,
        model: str = DEFAULT_EMBEDDING_MODEL,
        batch_size: int = DEFAULT_EMBEDDING_BATCH_SIZE,
        batch_delay: float = 0.1,
    ) -> None:
        self.gateway = gateway
        self.storage = storage
        self.model = model
        self.batch_size = batch_size
        self.batch_delay = batch_delay

    async def generate_embedding(self, text: str) -> List[float]:
        response = await self.gateway.create_embedding(
            EmbeddingRequest(model=self.model, input=text)
        )
        return response.data[0].embedding

    async def create_embeddings(
        self,
        documents: Sequence[Any],
        user_id: str,
        name: str,
        description: Optional[str] = None,
    ) -> List[EmbeddingResult]:
        """Embed and store ``documents`` in batches.

        A document that fails to embed or store is logged and skipped.
        """
        docs = [d if isinstance(d, Document) else Document.model_validate(d) for d in documents]
        results: List[EmbeddingResult] = []

        for start in range(0, len(docs), self.batch_size):
            batch_index = start // self.batch_size
            for doc in docs[start : start + self.batch_size]:
                metadata = {**doc.metadata, "content": doc.content}
                try:
                    embedding = await self.generate_embedding(doc.content)
                    stored = await self.storage.insert(
                        EMBEDDINGS_TABLE,
                        {
                            "name": name,
                            "description": description,
                            "source_type": "document",
                            "source_id": doc.id,
                            "embedding_model": self.model,
                            "vector_data": embedding,
                            "metadata": {**metadata, "batchIndex": batch_index},
                            "user_id": user_id,
                        },
                    )
                except Exception as exc:
                    logger.error(f"Error processing document {doc.id}: {exc}")
                    continue
                results.append(
                    EmbeddingResult(id=stored[0]["id"], embedding=embedding, metadata=metadata)
                )

            if start + self.batch_size < len(docs) and self.batch_delay:
                await asyncio.sleep(self.batch_delay)

        logger.info(f"Stored {len(results)}/{len(docs)} embeddings for '{name}'")
        return results

    async def search_similar_documents(
        self,
        query: str,
        user_id: Optional[str] = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> List[EmbeddingMatch]:
        query_embedding = await self.generate_embedding(query)
        return await self.storage.match_embeddings(
            query_embedding,
            match_threshold=threshold,
            match_count=limit,
            user_id=user_id,
        )

    async def get_user_embeddings(self, user_id: str) -> List[Dict[str, Any]]:
        return await self.storage.select(EMBEDDINGS_TABLE, [Filter.eq("user_id", user_id)])

    async def delete_embedding(self, embedding_id: str, user_id: str) -> None:
        await self.storage.delete(
            EMBEDDINGS_TABLE,
            [Filter.eq("id", embedding_id), Filter.eq("user_id", user_id)],
        )

    async def update_embedding(
        self, embedding_id: str, user_id: str, updates: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        allowed = {k: v for k, v in updates.items() if k in ("name", "description", "metadata")}
        rows = await self.storage.update(
            EMBEDDINGS_TABLE,
            allowed,
            [Filter.eq("id", embedding_id), Filter.eq("user_id", user_id)],
        )
        return rows[0] if rows else None


def chunk_document(
    content: str, file_name: str, chunk_size: int = 1000, chunk_overlap: int = 200
) -> List[Document]:
    """Split ``content`` into overlapping chunks, preferring sentence boundaries."""
    chunks: List[Document] = []
    start = 0
    index = 0

    while start < len(content):
        end = min(start + chunk_size, len(content))
        if end < len(content):
            search_start = max(end - 100, start)
            match = SENTENCE_END.search(content, search_start, end + 100)
            if match:
                end = match.start() + 1

        text = content[start:end].strip()
        if text:
            chunks.append(
                Document(
                    id=f"{file_name}-chunk-{index}",
                    content=text,
                    metadata={
                        "fileName": file_name,
                        "chunkIndex": index,
                        "startIndex": start,
                        "endIndex": end,
                        "fileSize": len(content),
                    },
                )
            )
            index += 1

        next_start = end - chunk_overlap
        if next_start >= len(content) or next_start <= start:
            if end >= len(content):
                break
            next_start = end
        start = next_start

    return chunks
