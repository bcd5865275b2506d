"""
LangSmith Tracing Helper

Provides the ``@traceable`` decorator so store read paths can log traces to
LangSmith with a single import line.

Set these variables in .env to enable tracing:
    LANGCHAIN_TRACING_V2=true
    LANGCHAIN_API_KEY=ls__...
    LANGCHAIN_PROJECT=conversation-memory   (optional)

If the environment variables are missing or langsmith is not installed,
``traceable`` returns the wrapped function unchanged.
"""

from __future__ import annotations

import os
from typing import Any, Callable, TypeVar

from src.utils.logging import get_logger

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _tracing_enabled() -> bool:
    return (
        os.getenv("LANGCHAIN_TRACING_V2", "").lower() in ("true", "1", "yes")
        and bool(os.getenv("LANGCHAIN_API_KEY", "").strip())
    )


def traceable(
    name: str | None = None,
    run_type: str = "chain",
    tags: list[str] | None = None,
) -> Callable[[F], F]:
    """
    Decorator that wraps a function with LangSmith tracing.

    Parameters
    ----------
    name : str | None
        Display name in the LangSmith UI (defaults to the function name).
    run_type : str
        One of "chain", "llm", "tool", "retriever" (default "chain").
    tags : list[str] | None
        Optional list of tags visible in the LangSmith UI.
    """
    def decorator(func: F) -> F:
        if not _tracing_enabled():
            return func

        try:
            from langsmith.run_helpers import traceable as ls_traceable  # noqa: PLC0415
        except ImportError:
            logger.warning(
                "langsmith not installed; @traceable on '%s' is a no-op.",
                func.__name__,
            )
            return func

        return ls_traceable(  # type: ignore[return-value]
            run_type=run_type,
            name=name or func.__name__,
            tags=tags or [],
            project_name=os.getenv("LANGCHAIN_PROJECT", "conversation-memory"),
        )(func)

    return decorator
