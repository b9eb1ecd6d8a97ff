"""Decorators for tracing MCP components."""

import functools
from collections.abc import Callable
from datetime import datetime
from typing import Any

import logfire


def trace_tool(tool_name: str):
    """Decorator to trace MCP tool execution.

    Tool handlers take a single ``arguments`` dict and return an MCP
    response dict. Scalar arguments become span attributes. The caller
    object is reduced to its role and branch.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(arguments: dict[str, Any], *args, **kwargs):
            with logfire.span(
                "tool.execution.{tool_name}",
                tool_name=tool_name,
                tool_category=_categorize_tool(tool_name),
            ) as span:
                start_time = datetime.now()
                _add_attributes(span, "input", arguments)

                try:
                    result = await func(arguments, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("tool.success", False)
                    span.set_attribute("tool.error", str(e))
                    raise

                span.set_attribute(
                    "tool.duration_ms", (datetime.now() - start_time).total_seconds() * 1000
                )
                _add_tool_result_metrics(span, result)
                return result

        return wrapper

    return decorator


def trace_resource(resource_type: str):
    """Lightweight decorator for resource reads."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with logfire.span(
                "resource.read.{resource_type}",
                resource_type=resource_type,
            ) as span:
                result = await func(*args, **kwargs)
                if hasattr(result, "__len__"):
                    span.set_attribute("result.length", len(result))
                return result

        return wrapper

    return decorator


def _categorize_tool(tool_name: str) -> str:
    if "reserv" in tool_name:
        return "reservations"
    if "reconcile" in tool_name:
        return "maintenance"
    return "circulation"


def _add_attributes(span, prefix: str, data: dict):
    for key, value in data.items():
        if isinstance(value, str | int | float | bool):
            span.set_attribute(f"{prefix}.{key}", value)
        elif key == "caller" and isinstance(value, dict):
            span.set_attribute(f"{prefix}.caller_role", str(value.get("role", "")))
            if value.get("branch_id") is not None:
                span.set_attribute(f"{prefix}.caller_branch_id", value["branch_id"])


def _add_tool_result_metrics(span, result: Any):
    if not isinstance(result, dict):
        return
    is_error = bool(result.get("isError"))
    span.set_attribute("tool.success", not is_error)
    error = result.get("error")
    if is_error and isinstance(error, dict):
        span.set_attribute("tool.error_code", error.get("code", ""))
        span.set_attribute("tool.error_status", error.get("status", 0))
