"""Document graph assembly with a short-lived cache."""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any

from docgraph import config
from docgraph.db.factory import get_document_repository, get_reference_repository
from docgraph.document_linking import safe_json_dict
from docgraph.models import GraphLink, GraphNode, GraphResponse
from docgraph.reference_inference import infer_references

logger = logging.getLogger("docgraph.graph")


class GraphService:
    """Builds ``{nodes, links}`` from stored documents.

    ``live`` graphs run reference inference over the current documents and
    are cached for ``ttl_seconds``; ``stored`` graphs read the edges written
    by the last batch inference run.
    """

    def __init__(self, db: Any, ttl_seconds: float | None = None):
        self.db = db
        self.document_repo = get_document_repository(db)
        self.reference_repo = get_reference_repository(db)
        self.ttl_seconds = config.GRAPH_CACHE_SECONDS if ttl_seconds is None else ttl_seconds
        self._cache: GraphResponse | None = None
        self._cache_expires_at = 0.0
        self._lock = asyncio.Lock()

    def invalidate(self) -> None:
        self._cache = None
        self._cache_expires_at = 0.0

    async def load_documents(self) -> list[dict]:
        documents = await self.document_repo.list_all()
        for doc in documents:
            doc["metadata"] = safe_json_dict(doc.get("metadata_json"))
        return documents

    @staticmethod
    def _nodes(documents: list[dict]) -> list[GraphNode]:
        return [
            GraphNode(
                id=str(doc["id"]),
                title=str(doc.get("title") or ""),
                path=str(doc.get("path") or ""),
                type=str(doc.get("type") or ""),
                created_at=str(doc.get("created_at") or ""),
            )
            for doc in documents
        ]

    async def get_graph(self, refresh: bool = False, source: str = "live") -> GraphResponse:
        if source == "stored":
            return await self._stored_graph()

        async with self._lock:
            now = time.monotonic()
            if not refresh and self._cache is not None and now < self._cache_expires_at:
                return self._cache

            documents = await self.load_documents()
            references = infer_references(documents)
            graph = GraphResponse(
                nodes=self._nodes(documents),
                links=[
                    GraphLink(source=ref.source, target=ref.target, type=ref.type, weight=ref.weight)
                    for ref in references
                ],
                generatedAt=datetime.now(timezone.utc).isoformat(),
                source="live",
            )
            self._cache = graph
            self._cache_expires_at = now + max(0.0, float(self.ttl_seconds))
            logger.info("Graph rebuilt: %d node(s), %d link(s)", len(graph.nodes), len(graph.links))
            return graph

    async def _stored_graph(self) -> GraphResponse:
        documents = await self.document_repo.list_all()
        rows = await self.reference_repo.list_all()
        return GraphResponse(
            nodes=self._nodes(documents),
            links=[
                GraphLink(
                    source=str(row["source_id"]),
                    target=str(row["target_id"]),
                    type=str(row["type"]),
                    weight=float(row["weight"]),
                )
                for row in rows
            ],
            generatedAt=datetime.now(timezone.utc).isoformat(),
            source="stored",
        )
