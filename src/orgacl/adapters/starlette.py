from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Tuple

from starlette.concurrency import run_in_threadpool
from starlette.responses import JSONResponse

from ..core.engine import Enforcer
from ..core.errors import EvaluationError, MalformedRequestError
from ..core.model import Decision
from ._common import CLAUSE_HEADER, REASON_HEADER, RequestBuilder

logger = logging.getLogger("orgacl.adapters.starlette")


def _deny_headers(reason: Optional[str], add_headers: bool) -> Dict[str, str]:
    if not add_headers or not reason:
        return {}
    return {REASON_HEADER: str(reason)}


async def _check(
    enforcer: Enforcer, build_request: RequestBuilder, request: Any, add_headers: bool
) -> Tuple[Optional[JSONResponse], Optional[Decision]]:
    """Return ``(None, decision)`` when allowed, otherwise ``(response, decision_or_None)``."""
    try:
        subject, obj, act = build_request(request)
        decision = await enforcer.evaluate_async(subject, obj, act)
    except MalformedRequestError as e:
        logger.debug("ORGACL: malformed request: %s", e)
        return JSONResponse({"detail": str(e)}, status_code=400), None
    except EvaluationError:
        hdrs = _deny_headers("error", add_headers)
        return JSONResponse({"detail": "Forbidden"}, status_code=403, headers=hdrs), None

    if decision.allowed:
        return None, decision
    hdrs = _deny_headers(decision.reason, add_headers)
    return JSONResponse({"detail": "Forbidden"}, status_code=403, headers=hdrs), decision


def require_access(
    enforcer: Enforcer,
    build_request: RequestBuilder,
    add_headers: bool = False,
) -> Callable[..., Any]:
    """
    Starlette adapter that works both:
      - as a decorator on an endpoint (returns an async endpoint)
      - as a dependency-like callable: `dep = require_access(...); await dep(request)`

    Denials answer 403, malformed requests 400. With ``add_headers`` the deny
    reason is sent in ``X-ORGACL-Reason`` and allowed responses carry the
    matching clause in ``X-ORGACL-Clause``.
    """

    async def _dependency(request: Any):
        deny, _ = await _check(enforcer, build_request, request, add_headers)
        return deny

    def _decorator_or_dependency(arg: Any):
        if not callable(arg):
            return _dependency(arg)

        handler = arg
        is_async = bool(getattr(handler, "__code__", None) and handler.__code__.co_flags & 0x80)

        async def _endpoint(request: Any):
            deny, decision = await _check(enforcer, build_request, request, add_headers)
            if deny is not None:
                return deny
            if is_async:
                response = await handler(request)
            else:
                response = await run_in_threadpool(handler, request)
            if add_headers and decision is not None and decision.clause is not None:
                response.headers[CLAUSE_HEADER] = decision.clause.value
            return response

        return _endpoint

    return _decorator_or_dependency


__all__ = ["require_access"]
