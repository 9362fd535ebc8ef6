"""HTTP implementation of the remote store protocol.

Talks to the canonical store API (`/api/v1/assessments...`) with an
`httpx.AsyncClient` and maps transport and HTTP failures onto the engine's
transient/permanent error split:

- connection errors and HTML bodies: transient, ``service_unavailable``
- 5xx: transient, ``server_error``
- unparseable JSON: transient, ``communication_error``
- 4xx: permanent
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx

from assessment_engine.errors import PermanentRemoteError, TransientRemoteError
from assessment_engine.logic.idempotency import new_idempotency_key
from assessment_engine.logic.remote_store import AssessmentFilter
from assessment_engine.models.assessment import AssessmentDocument
from assessment_engine.models.response import ResponseRecord, SubmitRequest

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
_PAGE_SIZE = 50


class HttpRemoteStore:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        prefix: str = API_PREFIX,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._prefix = prefix.rstrip("/")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpRemoteStore":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        allow_404: bool = False,
    ) -> Any:
        url = f"{self._prefix}{path}"
        try:
            resp = await self._client.request(method, url, json=json, params=params, headers=headers)
        except httpx.TransportError as exc:
            logger.warning("remote_request_failed method=%s url=%s error=%s", method, url, exc)
            raise TransientRemoteError(f"Network error: {exc}", kind="service_unavailable") from exc

        status = resp.status_code
        content_type = resp.headers.get("content-type", "").lower()
        if "text/html" in content_type:
            raise TransientRemoteError("API endpoint returned HTML", kind="service_unavailable", status=status)
        if status == 404 and allow_404:
            return None
        if status >= 500:
            raise TransientRemoteError(f"API Error: {status}", kind="server_error", status=status)
        if status >= 400:
            detail = ""
            try:
                body = resp.json()
                if isinstance(body, dict):
                    detail = str(body.get("detail") or body.get("title") or "")
            except ValueError:
                detail = resp.text
            raise PermanentRemoteError(f"API Error: {status} {detail}".strip(), status=status)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise TransientRemoteError("Invalid JSON response", kind="communication_error", status=status) from exc

    @staticmethod
    def _document(body: Any) -> AssessmentDocument:
        try:
            return AssessmentDocument.model_validate(body)
        except ValueError as exc:
            raise TransientRemoteError("Invalid JSON response", kind="communication_error") from exc

    async def list_assessments(self, filter: Optional[AssessmentFilter] = None) -> List[AssessmentDocument]:
        flt = filter or AssessmentFilter()
        params: Dict[str, Any] = {"status": flt.status, "pageSize": _PAGE_SIZE}
        if flt.job_id:
            params["jobId"] = flt.job_id
        if flt.search:
            params["search"] = flt.search
        out: List[AssessmentDocument] = []
        page = 1
        while True:
            body = await self._request("GET", "/assessments", params={**params, "page": page})
            items = (body or {}).get("assessments") or []
            out.extend(self._document(item) for item in items)
            if page >= int((body or {}).get("totalPages") or 0) or not items:
                break
            page += 1
        return out

    async def get_assessment_by_job(self, job_id: str) -> Optional[AssessmentDocument]:
        body = await self._request("GET", f"/assessments/{job_id}")
        return self._document(body) if body else None

    async def get_assessment(self, assessment_id: str) -> Optional[AssessmentDocument]:
        if not assessment_id:
            return None
        body = await self._request("GET", f"/assessments/by-id/{assessment_id}", allow_404=True)
        return self._document(body) if body else None

    async def create_assessment(
        self, job_id: str, document: AssessmentDocument, idempotency_key: Optional[str] = None
    ) -> AssessmentDocument:
        payload = document.model_copy(update={"id": ""}).to_wire()
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        body = await self._request("PUT", f"/assessments/{job_id}", json=payload, headers=headers)
        return self._document(body)

    async def update_assessment(
        self, assessment_id: str, job_id: str, document: AssessmentDocument
    ) -> AssessmentDocument:
        payload = document.model_copy(update={"id": assessment_id}).to_wire()
        body = await self._request("PUT", f"/assessments/{job_id}", json=payload)
        return self._document(body)

    async def save_assessment(self, job_id: str, document: AssessmentDocument) -> AssessmentDocument:
        headers = {"Idempotency-Key": new_idempotency_key()}
        body = await self._request("PUT", f"/assessments/{job_id}", json=document.to_wire(), headers=headers)
        return self._document(body)

    async def submit_response(
        self,
        assessment_id: str,
        candidate_id: str,
        answers: Mapping[str, object],
        elapsed_seconds: int,
        job_id: str = "",
    ) -> ResponseRecord:
        request = SubmitRequest(
            assessment_id=assessment_id,
            candidate_id=candidate_id,
            responses=dict(answers),
            time_spent=elapsed_seconds,
        )
        body = await self._request(
            "POST",
            f"/assessments/{job_id or assessment_id}/submit",
            json=request.model_dump(mode="json", by_alias=True),
        )
        try:
            return ResponseRecord.model_validate(body)
        except ValueError as exc:
            raise TransientRemoteError("Invalid JSON response", kind="communication_error") from exc


__all__ = ["API_PREFIX", "HttpRemoteStore"]
