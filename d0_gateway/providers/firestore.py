"""
Firestore REST client - structured queries over the subscription event store

Speaks the ``:runQuery`` / ``:runAggregationQuery`` wire contract directly with
httpx instead of the heavyweight admin SDK. Documents come back in the typed
value format (``{"integerValue": "42"}``) and are decoded to plain Python values.
"""
import asyncio
import base64
import json
import re
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx
from google.auth.transport.requests import Request as GoogleAuthRequest
from google.oauth2 import service_account

from core.config import get_settings
from core.exceptions import ConfigurationError

from ..base import BaseAPIClient
from ..exceptions import DocumentQueryError, InvalidResponseError
from ..types import DocumentQuery, FieldFilter

DATASTORE_SCOPE = "https://www.googleapis.com/auth/datastore"

_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


# --- Typed value codec ---


def encode_value(value: Any) -> Dict[str, Any]:
    """Encode a Python value into the typed wire format"""
    if value is None:
        return {"nullValue": "NULL_VALUE"}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return {"timestampValue": value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")}
    if isinstance(value, dict):
        return {"mapValue": {"fields": {k: encode_value(v) for k, v in value.items()}}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise TypeError(f"Cannot encode {type(value).__name__} as a document value")


def _parse_timestamp(raw: str) -> datetime:
    # Firestore emits nanosecond precision; datetime stops at microseconds
    text = _FRACTION_RE.sub(r".\1", raw).replace("Z", "+00:00")
    return datetime.fromisoformat(text)


def decode_value(value: Dict[str, Any]) -> Any:
    """Decode a typed wire value into a plain Python value"""
    if "stringValue" in value:
        return value["stringValue"]
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "timestampValue" in value:
        return _parse_timestamp(value["timestampValue"])
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "nullValue" in value:
        return None
    if "referenceValue" in value:
        return value["referenceValue"]
    if "mapValue" in value:
        fields = value["mapValue"].get("fields") or {}
        return {k: decode_value(v) for k, v in fields.items()}
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values") or []]
    return None


def decode_document(document: Dict[str, Any]) -> Dict[str, Any]:
    """Decode a document into a field map, adding its ID under ``_id``"""
    record = {key: decode_value(val) for key, val in (document.get("fields") or {}).items()}
    record["_id"] = document.get("name", "").rsplit("/", 1)[-1]
    return record


def _encode_filters(filters: Sequence[FieldFilter]) -> Optional[Dict[str, Any]]:
    clauses = [
        {
            "fieldFilter": {
                "field": {"fieldPath": f.field},
                "op": f.op.value,
                "value": encode_value(f.value),
            }
        }
        for f in filters
    ]
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses[0]
    return {"compositeFilter": {"op": "AND", "filters": clauses}}


def build_structured_query(query: DocumentQuery) -> Dict[str, Any]:
    """Translate a DocumentQuery into the ``structuredQuery`` body"""
    structured: Dict[str, Any] = {"from": [{"collectionId": query.collection}]}

    where = _encode_filters(query.filters)
    if where:
        structured["where"] = where

    if query.order_by:
        structured["orderBy"] = [
            {"field": {"fieldPath": o.field}, "direction": o.direction.value} for o in query.order_by
        ]

    if query.select:
        structured["select"] = {"fields": [{"fieldPath": name} for name in query.select]}

    if query.limit:
        structured["limit"] = query.limit

    if query.offset:
        structured["offset"] = query.offset

    return structured


class FirestoreClient(BaseAPIClient):
    """Document store client authenticated with a service-account token"""

    def __init__(
        self,
        project_id: Optional[str] = None,
        token_provider: Optional[Callable[[], Awaitable[str]]] = None,
        **kwargs,
    ):
        self.project_id = project_id or get_settings().firebase_project_id
        self._token_provider = token_provider
        self._credentials = None
        super().__init__(provider="firestore", **kwargs)

    def _get_base_url(self) -> str:
        return f"{self.settings.firestore_base_url}/projects/{self.project_id}/databases/(default)"

    def _get_headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _load_credentials(self) -> service_account.Credentials:
        encoded = self.settings.google_application_credentials_base64
        if encoded:
            info = json.loads(base64.b64decode(encoded.get_secret_value()).decode("utf-8"))
            return service_account.Credentials.from_service_account_info(info, scopes=[DATASTORE_SCOPE])

        path = self.settings.google_application_credentials
        if path:
            return service_account.Credentials.from_service_account_file(path, scopes=[DATASTORE_SCOPE])

        raise ConfigurationError(
            "GOOGLE_APPLICATION_CREDENTIALS not configured",
            setting="google_application_credentials",
        )

    async def _access_token(self) -> str:
        if self._token_provider is not None:
            return await self._token_provider()

        if self._credentials is None:
            self._credentials = self._load_credentials()
        if not self._credentials.valid:
            # google-auth refreshes synchronously
            await asyncio.to_thread(self._credentials.refresh, GoogleAuthRequest())
        return self._credentials.token

    async def _prepare_headers(self) -> Dict[str, str]:
        if not self.project_id:
            raise ConfigurationError("FIREBASE_PROJECT_ID not configured", setting="firebase_project_id")
        token = await self._access_token()
        return {**self._get_headers(), "Authorization": f"Bearer {token}"}

    def _build_error(self, response: httpx.Response) -> DocumentQueryError:
        operation = "aggregation" if str(response.request.url).endswith(":runAggregationQuery") else "query"
        return DocumentQueryError(operation, response.status_code, response.text)

    async def run_query(self, query: DocumentQuery) -> List[Dict[str, Any]]:
        """
        Run a structured query

        Args:
            query: Collection, AND-combined filters, ordering, projection and paging

        Returns:
            Decoded documents in the order the store returned them

        Raises:
            DocumentQueryError: On a non-2xx response
        """
        body = {"structuredQuery": build_structured_query(query)}
        results = await self.make_request("POST", "documents:runQuery", json=body)

        if not isinstance(results, list):
            raise InvalidResponseError(self.provider, "list of query results", str(results))

        documents = [decode_document(row["document"]) for row in results if row.get("document")]
        self.logger.debug(f"Query on {query.collection} returned {len(documents)} documents")
        return documents

    async def run_aggregation(self, collection: str, filters: Optional[Sequence[FieldFilter]] = None) -> int:
        """Server-side COUNT of documents matching ``filters``"""
        structured: Dict[str, Any] = {"from": [{"collectionId": collection}]}
        where = _encode_filters(filters or [])
        if where:
            structured["where"] = where

        body = {
            "structuredAggregationQuery": {
                "structuredQuery": structured,
                "aggregations": [{"count": {}, "alias": "count"}],
            }
        }
        results = await self.make_request("POST", "documents:runAggregationQuery", json=body)

        try:
            count = results[0]["result"]["aggregateFields"]["count"]
        except (IndexError, KeyError, TypeError):
            return 0
        return int(count.get("integerValue") or 0)
