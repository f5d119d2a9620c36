"""Mapping of ledger outcomes to HTTP responses, with request metrics."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Collection, Iterator

from fastapi import HTTPException, status
from prometheus_client import Counter, Gauge, Histogram

from ..application.errors.translator import translate_error, translate_exception
from ..domain.errors import (
    DealActionNotAllowedError,
    DealValidationError,
    LayerNotConfiguredError,
    LedgerTransportError,
    MethodNotAllowedError,
    SigningError,
)
from ..infrastructure.cache import CachedResult

logger = logging.getLogger(__name__)

REQUEST_DURATION_BUCKETS = (
    [float(x) for x in (5, 10, 25, 50, 100, 250, 500)]
    + [float(x) for x in range(1000, 16000, 1000)]  # up to the upstream timeout
    + [float("inf")]
)

ledger_api_requests_total = Counter(
    "ledger_api_requests_total",
    "Total ledger API requests processed",
    ["route", "status"],
)

ledger_api_request_duration_milliseconds = Histogram(
    "ledger_api_request_duration_milliseconds",
    "Wall time to process a ledger API request (ms)",
    ["route", "status"],
    buckets=REQUEST_DURATION_BUCKETS,
)

ledger_api_requests_inprogress = Gauge(
    "ledger_api_requests_inprogress",
    "Number of ledger API requests currently being processed",
    multiprocess_mode="livesum",
)


@contextmanager
def ledger_call(route: str) -> Iterator[None]:
    """Translate ledger exceptions raised in the block into ``HTTPException``."""
    start_time = time.perf_counter()
    outcome = "success"
    ledger_api_requests_inprogress.inc()
    try:
        yield
    except HTTPException as e:
        outcome = "client_error" if e.status_code < 500 else "server_error"
        raise
    except DealValidationError as e:
        outcome = "client_error"
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Deal validation failed", "issues": e.as_dict()},
        ) from e
    except DealActionNotAllowedError as e:
        outcome = "client_error"
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except MethodNotAllowedError as e:
        outcome = "client_error"
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e)) from e
    except LayerNotConfiguredError as e:
        outcome = "server_error"
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)
        ) from e
    except LedgerTransportError as e:
        outcome = "upstream_error"
        code = (
            status.HTTP_504_GATEWAY_TIMEOUT
            if e.code == 504
            else status.HTTP_502_BAD_GATEWAY
        )
        raise HTTPException(
            status_code=code, detail=translate_exception(e).model_dump()
        ) from e
    except SigningError as e:
        outcome = "server_error"
        logger.exception("Ledger request signing failed in %s", route)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Request signing failed: {e}",
        ) from e
    except ValueError as e:
        outcome = "client_error"
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)
        ) from e
    except Exception as e:
        outcome = "server_error"
        logger.exception("Unexpected failure in %s", route)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to process request: {str(e)}",
        ) from e
    finally:
        elapsed = (time.perf_counter() - start_time) * 1000
        ledger_api_requests_total.labels(route=route, status=outcome).inc()
        ledger_api_request_duration_milliseconds.labels(
            route=route, status=outcome
        ).observe(elapsed)
        ledger_api_requests_inprogress.dec()


def ledger_response(
    result: CachedResult, *, not_found_codes: Collection[int] = ()
) -> dict[str, Any]:
    """Render a ledger result, raising for application-level errors.

    Error codes in ``not_found_codes`` become 404, other upstream errors 400.
    """
    response = result.data
    if response.error is not None:
        code = (
            status.HTTP_404_NOT_FOUND
            if response.error.code in not_found_codes
            else status.HTTP_400_BAD_REQUEST
        )
        raise HTTPException(
            status_code=code,
            detail={
                "error": response.error.model_dump(mode="json", exclude_none=True),
                "error_info": translate_error(response.error).model_dump(),
            },
        )
    body = response.model_dump(mode="json", exclude_none=True)
    body["from_cache"] = result.from_cache
    body["cache"] = result.cache_info.model_dump(mode="json")
    return body
