from typing import Any, Callable, Dict
import inspect
import logging
from functools import wraps

##############################
# Action Tracing
##############################

def _describe_payload(payload: Any) -> Dict[str, Any]:
    """Summarize an action payload for logging without dumping record data."""
    if not isinstance(payload, dict):
        return {}
    summary: Dict[str, Any] = {}
    model = payload.get("model")
    if model is not None:
        summary["entity"] = getattr(model, "entity", repr(model))
    data = payload.get("data")
    if isinstance(data, list):
        summary["items"] = len(data)
    elif data is not None:
        summary["items"] = 1
    if "selector" in payload:
        selector = payload["selector"]
        summary["selector"] = "predicate" if callable(selector) else repr(selector)
    return summary


def trace_action(func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Decorator tracing an action's execution and its commits.

    Every action must issue exactly one commit; the tracer compares the
    context's commit counter before and after the call and logs an error
    when an action broke that rule. Works with both sync and async actions.
    """
    logger = logging.getLogger("ActionTracer")
    name = func.__name__

    @wraps(func)
    async def async_wrapper(context: Any, payload: Any = None) -> Any:
        logger.info(f"Running action '{name}' {_describe_payload(payload)}")
        before = context.commit_count
        result = await func(context, payload)
        _check_commits(name, context.commit_count - before)
        logger.debug(f"Action '{name}' finished")
        return result

    @wraps(func)
    def sync_wrapper(context: Any, payload: Any = None) -> Any:
        logger.info(f"Running action '{name}' {_describe_payload(payload)}")
        before = context.commit_count
        result = func(context, payload)
        _check_commits(name, context.commit_count - before)
        logger.debug(f"Action '{name}' finished")
        return result

    def _check_commits(action: str, issued: int) -> None:
        if issued != 1:
            logger.error(f"Action '{action}' issued {issued} commits, expected exactly one")

    if inspect.iscoroutinefunction(func):
        return async_wrapper
    return sync_wrapper
