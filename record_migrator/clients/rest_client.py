"""REST client for the platform's data API."""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import InstanceClient, QueryResult
from .exceptions import (
    ApiLimitError,
    AuthenticationError,
    InstanceError,
    ObjectNotFoundError,
)
from ..models.instance import InstanceHandle
from ..models.record import ApiError, WriteResult

logger = logging.getLogger(__name__)

# Maximum number of values placed in a single IN (...) clause
IN_CLAUSE_CHUNK = 200

AUTH_ERROR_CODES = {"INVALID_SESSION_ID", "INVALID_AUTH_HEADER"}
LIMIT_ERROR_CODES = {"REQUEST_LIMIT_EXCEEDED", "TOO_MANY_REQUESTS"}
NOT_FOUND_ERROR_CODES = {"NOT_FOUND", "INVALID_TYPE"}


def soql_literal(value: Any) -> str:
    """Render a value as a quoted query literal."""
    text = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{text}'"


def build_soql(
    object_type: str,
    fields: Sequence[str],
    in_filters: Optional[Dict[str, Sequence[str]]] = None,
    where: Optional[str] = None,
    limit: Optional[int] = None,
) -> str:
    """
    Build a query string.

    Args:
        object_type: Object API name
        fields: Fields to select; empty means ``COUNT()``
        in_filters: Field -> allowed values, ANDed together
        where: Additional caller predicate
        limit: Result cap

    Returns:
        Query text
    """
    select = ", ".join(fields) if fields else "COUNT()"
    soql = f"SELECT {select} FROM {object_type}"

    clauses = []
    for field_name, values in (in_filters or {}).items():
        literals = ", ".join(soql_literal(v) for v in values)
        clauses.append(f"{field_name} IN ({literals})")
    if where:
        clauses.append(f"({where})")
    if clauses:
        soql += " WHERE " + " AND ".join(clauses)

    if limit is not None:
        soql += f" LIMIT {int(limit)}"
    return soql


class RestInstanceClient(InstanceClient):
    """
    Instance client over the REST data API.

    Uses a single requests session per instance with retry on transient
    server errors and a minimum interval between requests.
    """

    def __init__(
        self,
        handle: InstanceHandle,
        rate_limit: float = 10.0,
        max_retries: int = 3,
        backoff_factor: float = 1.0,
        timeout: float = 120.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the client.

        Args:
            handle: Instance to talk to
            rate_limit: Max requests per second (0 disables the wait)
            max_retries: Retries for 5xx responses
            backoff_factor: Retry backoff factor
            timeout: Per-request timeout in seconds
            session: Custom requests session
        """
        super().__init__(handle)
        self.rate_limit = rate_limit
        self.timeout = timeout
        self._last_request_time = 0.0
        self._session = session or self._create_session(max_retries, backoff_factor)

    def _create_session(self, max_retries: int, backoff_factor: float) -> requests.Session:
        """Create a requests session with retry logic and authentication."""
        session = requests.Session()

        retries = Retry(
            total=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=[500, 502, 503, 504],
        )
        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        session.headers["Authorization"] = f"Bearer {self.handle.access_token}"
        session.headers["Accept"] = "application/json"
        session.headers["Content-Type"] = "application/json"
        return session

    def _rate_limit_wait(self):
        """Wait to respect rate limits."""
        if self.rate_limit > 0:
            elapsed = time.time() - self._last_request_time
            wait_time = (1.0 / self.rate_limit) - elapsed
            if wait_time > 0:
                time.sleep(wait_time)
        self._last_request_time = time.time()

    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        if path.startswith("/services/"):
            return f"{self.handle.instance_url.rstrip('/')}{path}"
        return f"{self.handle.base_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        """Send a request; raises only for transport failures and 401."""
        self._rate_limit_wait()
        url = self._url(path)
        logger.debug(f"{method} {url}")

        try:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise InstanceError(
                f"Request to {self.name} failed: {e}",
                instance=self.name,
            ) from e

        if response.status_code == 401:
            raise AuthenticationError(
                f"Session for {self.name} expired or is invalid",
                status=401,
                errors=self._parse_errors(response),
                instance=self.name,
            )
        return response

    @staticmethod
    def _parse_errors(response: requests.Response) -> List[ApiError]:
        """Extract the platform's error list from a response body."""
        try:
            body = response.json()
        except ValueError:
            text = response.text or response.reason or ""
            return [ApiError(status_code=str(response.status_code), message=text)]

        if isinstance(body, dict):
            body = body.get("errors") or [body]
        if not isinstance(body, list):
            return [ApiError(status_code=str(response.status_code), message=str(body))]

        errors = []
        for item in body:
            if isinstance(item, dict):
                errors.append(ApiError.from_dict(item))
            else:
                errors.append(ApiError(status_code=str(response.status_code), message=str(item)))
        return errors

    def _raise_for_status(self, response: requests.Response, context: str) -> None:
        """Raise the matching InstanceError for a failed whole-request call."""
        if response.ok:
            return

        errors = self._parse_errors(response)
        codes = {e.status_code for e in errors}
        detail = "; ".join(f"{e.status_code}: {e.message}" for e in errors)
        message = f"{context} failed on {self.name} ({response.status_code}): {detail}"

        if codes & AUTH_ERROR_CODES:
            raise AuthenticationError(message, response.status_code, errors, self.name)
        if response.status_code == 429 or codes & LIMIT_ERROR_CODES:
            raise ApiLimitError(message, response.status_code, errors, self.name)
        if response.status_code == 404 or codes & NOT_FOUND_ERROR_CODES:
            raise ObjectNotFoundError(message, response.status_code, errors, self.name)
        raise InstanceError(message, response.status_code, errors, self.name)

    def list_objects(self) -> List[Dict[str, Any]]:
        response = self._request("GET", "sobjects")
        self._raise_for_status(response, "List objects")
        return response.json().get("sobjects", [])

    def describe_object(self, object_type: str) -> Dict[str, Any]:
        response = self._request("GET", f"sobjects/{object_type}/describe")
        self._raise_for_status(response, f"Describe {object_type}")
        return response.json()

    def _query_all(self, soql: str) -> QueryResult:
        """Run one query and follow pagination."""
        response = self._request("GET", "query", params={"q": soql})
        self._raise_for_status(response, "Query")
        body = response.json()

        result = QueryResult(records=list(body.get("records", [])), total_size=body.get("totalSize", 0))
        next_url = body.get("nextRecordsUrl")
        while next_url:
            response = self._request("GET", next_url)
            self._raise_for_status(response, "Query")
            body = response.json()
            result.records.extend(body.get("records", []))
            next_url = body.get("nextRecordsUrl")
        return result

    def _chunked_filters(
        self,
        in_filters: Optional[Dict[str, Sequence[str]]],
    ) -> List[Optional[Dict[str, Sequence[str]]]]:
        """Split the first oversized IN filter into several filter sets."""
        if not in_filters:
            return [in_filters]

        for field_name, values in in_filters.items():
            values = list(values)
            if len(values) > IN_CLAUSE_CHUNK:
                chunks = []
                for i in range(0, len(values), IN_CLAUSE_CHUNK):
                    chunk = dict(in_filters)
                    chunk[field_name] = values[i:i + IN_CLAUSE_CHUNK]
                    chunks.append(chunk)
                return chunks
        return [in_filters]

    def query(
        self,
        object_type: str,
        fields: Sequence[str],
        in_filters: Optional[Dict[str, Sequence[str]]] = None,
        where: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> QueryResult:
        if in_filters and any(len(v) == 0 for v in in_filters.values()):
            return QueryResult()

        combined = QueryResult()
        for filters in self._chunked_filters(in_filters):
            remaining = None if limit is None else limit - len(combined.records)
            if remaining is not None and remaining <= 0:
                break
            soql = build_soql(object_type, fields, filters, where, remaining)
            chunk = self._query_all(soql)
            combined.records.extend(chunk.records)
            combined.total_size += chunk.total_size
        return combined

    def count(
        self,
        object_type: str,
        in_filters: Optional[Dict[str, Sequence[str]]] = None,
        where: Optional[str] = None,
    ) -> int:
        if in_filters and any(len(v) == 0 for v in in_filters.values()):
            return 0

        total = 0
        for filters in self._chunked_filters(in_filters):
            total += self._query_all(build_soql(object_type, [], filters, where)).total_size
        return total

    @staticmethod
    def _write_result(item: Dict[str, Any]) -> WriteResult:
        return WriteResult(
            success=bool(item.get("success")),
            id=item.get("id"),
            created=item.get("created", True),
            errors=[ApiError.from_dict(e) for e in item.get("errors") or []],
        )

    def insert_records(self, object_type: str, records: List[Dict[str, Any]]) -> List[WriteResult]:
        body = {
            "allOrNone": False,
            "records": [{"attributes": {"type": object_type}, **record} for record in records],
        }
        response = self._request("POST", "composite/sobjects", json=body)
        self._raise_for_status(response, f"Insert {object_type}")

        results = [self._write_result(item) for item in response.json()]
        if len(results) != len(records):
            raise InstanceError(
                f"Insert {object_type} returned {len(results)} results for {len(records)} records",
                response.status_code,
                instance=self.name,
            )
        return results

    def upsert_record(
        self,
        object_type: str,
        external_id_field: str,
        external_id_value: str,
        record: Dict[str, Any],
    ) -> WriteResult:
        # The addressed external id must not be repeated in the body
        body = {k: v for k, v in record.items() if k != external_id_field}
        path = f"sobjects/{object_type}/{external_id_field}/{quote(str(external_id_value), safe='')}"
        response = self._request("PATCH", path, json=body)

        if response.status_code in (200, 201):
            data = response.json() if response.text else {}
            return WriteResult(
                success=True,
                id=data.get("id"),
                created=response.status_code == 201 or bool(data.get("created")),
                http_status=response.status_code,
            )

        if response.status_code == 204:
            # Older API versions answer an update without a body
            found = self.query(
                object_type, ["Id"], in_filters={external_id_field: [external_id_value]}, limit=1
            )
            target_id = found.records[0]["Id"] if found.records else None
            return WriteResult(success=target_id is not None, id=target_id, created=False, http_status=204)

        if response.status_code == 300:
            return WriteResult(
                success=False,
                errors=[ApiError(
                    status_code="DUPLICATE_EXTERNAL_ID",
                    message=f"More than one {object_type} has {external_id_field} = {external_id_value}",
                    fields=[external_id_field],
                )],
                http_status=300,
            )

        return WriteResult(success=False, errors=self._parse_errors(response), http_status=response.status_code)

    def delete_records(self, record_ids: List[str]) -> List[WriteResult]:
        params = {"ids": ",".join(record_ids), "allOrNone": "false"}
        response = self._request("DELETE", "composite/sobjects", params=params)
        self._raise_for_status(response, "Delete")
        return [self._write_result(item) for item in response.json()]
