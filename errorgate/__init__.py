from ._client import ReportingClient
from ._config import Environment, ReportingConfig, config_from_env
from ._gateway import ErrorReportingGateway, ReportedError
from ._loader import Host
from ._result import SDK_UNAVAILABLE, Result, Status

__version__ = "1.0.3"

host = Host()
_gateway = None


def init(dsn, environment="Prod", debug=False, on_ready=None, before_send=None, user_agent=None):
    """Load and initialize error reporting for this process.

    Loading happens in the background; pass on_ready= to be told when the
    client is usable, or wait on the returned gateway's ``ready`` future.
    Calling init again reinitializes the client with the new settings.
    """
    global _gateway
    if user_agent is not None:
        host.user_agent = user_agent
    if _gateway is None:
        _gateway = ErrorReportingGateway(host=host)
    try:
        config = ReportingConfig(dsn=dsn, environment=environment, debug=debug)
    except ValueError as exc:
        return Result(Status.INVALID_INPUT, error=exc)
    return _gateway.initialize(config, on_ready=on_ready, before_send=before_send)


def set_before_send(callback):
    """Register the callback that sees every outbound event. Last registrant wins."""
    host.before_send = callback


def set_scope(tags=None, user=None):
    """Set global tags ([(key, value), ...]) and/or user for subsequent events."""
    if _gateway:
        return _gateway.enrich_scope(tags, user)
    return SDK_UNAVAILABLE


def send_error(title, extra=None, finger=None, user=None):
    if _gateway:
        return _gateway.report_exception(title, extra, fingerprint=finger, user=user)
    return SDK_UNAVAILABLE


def send_message(title, extra=None, level="info", finger=None, user=None):
    if _gateway:
        return _gateway.report_message(title, extra, level=level, fingerprint=finger, user=user)
    return SDK_UNAVAILABLE


def show_user_report(event_id=None):
    """Open the feedback form for event_id, defaulting to the last event."""
    if _gateway:
        return _gateway.show_feedback_dialog(event_id)
    return SDK_UNAVAILABLE


__all__ = [
    "Environment",
    "ErrorReportingGateway",
    "Host",
    "ReportedError",
    "ReportingClient",
    "ReportingConfig",
    "Result",
    "Status",
    "config_from_env",
    "init",
    "send_error",
    "send_message",
    "set_before_send",
    "set_scope",
    "show_user_report",
]
