# core/request_context.py

import uuid
from contextvars import ContextVar
from typing import Optional

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    return _request_id.get()


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Bind a request id to the current task context.
    A new uuid4 is generated when none is supplied.
    """
    rid = request_id or str(uuid.uuid4())
    _request_id.set(rid)
    return rid
