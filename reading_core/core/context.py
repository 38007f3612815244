from contextvars import ContextVar
from typing import Optional

# Trace id of the reader view / refresh run currently executing
trace_id_ctx: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)

def get_trace_id() -> str:
    return trace_id_ctx.get() or "n/a"

def set_trace_id(trace_id: str):
    trace_id_ctx.set(trace_id)
