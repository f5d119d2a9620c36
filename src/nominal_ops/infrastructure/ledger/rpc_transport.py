"""Signed JSON-RPC transport for the upstream ledger API."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Mapping, Optional, Type
from types import TracebackType

import httpx
from pydantic import ValidationError

from ...crypto.signer import RsaSigner, json_to_bytes
from ...domain.errors import (
    InvalidResponseError,
    LedgerAuthenticationError,
    LedgerConnectionError,
    LedgerForbiddenError,
    LedgerHttpError,
    LedgerTimeoutError,
    LedgerTransportError,
    LedgerUnavailableError,
    MalformedRequestError,
)
from ...domain.ledger.entities import (
    JsonRpcRequest,
    JsonRpcResponse,
    Layer,
    LedgerCredentials,
    UpstreamError,
)
from ..http.http_client import AsyncHttpClient
from .request_log import create_log_entry, log_ledger_request


ENDPOINTS: dict[Layer, str] = {
    Layer.PRE: "https://pre.tochka.com/api/v1/cyclops/v2/jsonrpc",
    Layer.PROD: "https://api.tochka.com/api/v1/cyclops/v2/jsonrpc",
}

DEFAULT_TIMEOUT_SECONDS = 15.0

SIGN_DATA_HEADER = "sign-data"
SIGN_THUMBPRINT_HEADER = "sign-thumbprint"
SIGN_SYSTEM_HEADER = "sign-system"

TIMEOUT_GUIDANCE = (
    "The ledger endpoint did not answer in time. Check that it is reachable from "
    "this host, that the layer credentials are valid and that the server IP is "
    "on the upstream allow-list."
)
FORBIDDEN_GUIDANCE = (
    "Possible causes: invalid request signature (check the private key); wrong "
    "sign-thumbprint or sign-system; server IP not on the upstream allow-list; "
    "expired signing certificate."
)


def classify_http_error(status_code: int, body: str) -> LedgerTransportError:
    """Map a non-2xx upstream status to a typed transport error."""
    if status_code == 400:
        return MalformedRequestError(
            f"Malformed request (400): {body or 'check the parameters'}",
            code=400,
            body=body,
        )
    if status_code == 401:
        return LedgerAuthenticationError(
            "Authentication failed (401). Check the layer key settings.",
            code=401,
            body=body,
        )
    if status_code == 403:
        return LedgerForbiddenError(
            "Access denied (403).",
            code=403,
            guidance=FORBIDDEN_GUIDANCE,
            body=body,
        )
    if status_code in (500, 503):
        return LedgerUnavailableError(
            f"Ledger server unavailable ({status_code}). Try again later.",
            code=status_code,
            body=body,
        )
    suffix = f": {body}" if body else ""
    return LedgerHttpError(f"HTTP {status_code}{suffix}", code=status_code, body=body)


class RpcTransport:
    """Issues one signed JSON-RPC call per ``call``.

    No retries and no caching: both belong to higher layers.
    """

    def __init__(
        self,
        layer: Layer,
        credentials: LedgerCredentials,
        *,
        endpoint: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http: Optional[AsyncHttpClient] = None,
        signer: Optional[RsaSigner] = None,
    ) -> None:
        self.layer = Layer(layer)
        self._credentials = credentials
        self._endpoint = endpoint or ENDPOINTS[self.layer]
        self._signer = signer or RsaSigner.from_pem(credentials.private_key_pem)
        self._timeout = timeout
        self._http = http or AsyncHttpClient(timeout=timeout)

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def build_body(self, request: JsonRpcRequest) -> bytes:
        return json_to_bytes(request.model_dump())

    def signed_headers(self, body: bytes) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            SIGN_DATA_HEADER: self._signer.sign(body),
            SIGN_THUMBPRINT_HEADER: self._credentials.sign_thumbprint,
            SIGN_SYSTEM_HEADER: self._credentials.sign_system,
        }

    async def call(
        self, method: str, params: Optional[Mapping[str, Any]] = None
    ) -> JsonRpcResponse:
        """Execute ``method`` and return the JSON-RPC envelope.

        An upstream ``error`` member is returned, not raised.

        Raises:
            LedgerTransportError: timeout, network failure, non-2xx status or
                unparseable body.
            SigningError: the private key cannot sign.
        """
        request = JsonRpcRequest(method=method, params=dict(params or {}))
        body = self.build_body(request)
        headers = self.signed_headers(body)

        start = time.perf_counter()
        try:
            response = await self._send(body, headers)
        except LedgerTransportError as e:
            self._log(request, start, UpstreamError(code=e.code, message=e.message))
            raise
        self._log(request, start, response.error)
        return response

    async def _send(self, body: bytes, headers: dict[str, str]) -> JsonRpcResponse:
        # httpx timeouts apply per read; the whole exchange gets one deadline.
        try:
            resp = await asyncio.wait_for(
                self._http.post_bytes(self._endpoint, body, headers=headers),
                self._timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise LedgerTimeoutError(
                f"Ledger request timed out ({self.layer.value})",
                guidance=TIMEOUT_GUIDANCE,
            ) from e
        except httpx.RequestError as e:
            raise LedgerConnectionError(
                f"Could not reach ledger at {self._endpoint}: {e}",
                guidance=TIMEOUT_GUIDANCE,
            ) from e

        if not resp.is_success:
            raise classify_http_error(resp.status_code, _safe_text(resp))

        try:
            payload = resp.json()
        except ValueError as e:
            raise InvalidResponseError(
                "Ledger returned a non-JSON body", body=_safe_text(resp)
            ) from e
        if not isinstance(payload, dict):
            raise InvalidResponseError(
                "Ledger returned JSON that is not an object", body=_safe_text(resp)
            )
        try:
            return JsonRpcResponse.model_validate(payload)
        except ValidationError as e:
            raise InvalidResponseError(
                f"Ledger returned an invalid JSON-RPC envelope: {e}",
                body=_safe_text(resp),
            ) from e

    def _log(
        self,
        request: JsonRpcRequest,
        start: float,
        error: Optional[UpstreamError],
    ) -> None:
        entry = create_log_entry(
            request_id=request.id,
            method=request.method,
            layer=self.layer,
            params=request.params,
            success=error is None,
            duration_ms=(time.perf_counter() - start) * 1000.0,
            error=error,
        )
        log_ledger_request(entry)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "RpcTransport":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        await self.aclose()


def _safe_text(resp: httpx.Response) -> str:
    try:
        return resp.text
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        return ""
