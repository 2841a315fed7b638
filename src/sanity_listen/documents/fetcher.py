"""Initial published/draft snapshot via the document endpoint."""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import httpx

from sanity_listen.documents.reconciler import Document, draft_id, published_id
from sanity_listen.listen.options import ListenOptions
from sanity_listen.utils.errors import TransportError
from sanity_listen.utils.logging import ContextKeys, LoggerFactory

logger = LoggerFactory.get_logger("documents.fetcher")

HTTP_TIMEOUT = 30.0


class DocumentFetcher:
    """Fetches the current published and draft records of one document."""

    def __init__(
        self,
        options: ListenOptions,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = HTTP_TIMEOUT,
    ) -> None:
        self._options = options
        self._client = client
        self._timeout = timeout

    async def fetch_pair(self, document_id: str) -> Tuple[Optional[Document], Optional[Document]]:
        """Return ``(published, draft)``; either may be ``None``."""
        doc_id = published_id(document_id)
        drafts_id = draft_id(doc_id)
        url = self._options.doc_url([doc_id, drafts_id])
        payload = await self._get_json(url)

        documents = payload.get("documents") or []
        by_id: Dict[str, Document] = {
            doc["_id"]: doc for doc in documents if isinstance(doc, dict) and "_id" in doc
        }
        published, draft = by_id.get(doc_id), by_id.get(drafts_id)
        logger.debug(
            "Fetched initial document pair",
            extra_context={
                ContextKeys.DOCUMENT_ID: doc_id,
                "has_published": published is not None,
                "has_draft": draft is not None,
            },
        )
        return published, draft

    async def _get_json(self, url: str) -> Dict[str, Any]:
        headers = self._options.headers(accept="application/json")
        try:
            if self._client is not None:
                response = await self._client.get(url, headers=headers, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url, headers=headers)
        except httpx.TimeoutException as exc:
            raise TransportError("timed out fetching document", url=url, timeout=True) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"document fetch failed: {exc}", url=url) from exc

        if response.status_code >= 400:
            logger.error(
                "Document endpoint returned an error status",
                extra_context={
                    ContextKeys.HTTP_STATUS: response.status_code,
                    "response_text": response.text[:500] if response.text else None,
                },
            )
            raise TransportError(
                f"response error status {response.status_code}",
                url=url,
                http_status=response.status_code,
                operation="fetch_document",
            )
        if not response.content:
            return {}
        return response.json()
