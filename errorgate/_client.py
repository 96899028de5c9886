import atexit
import json
import logging
import platform
import queue
import sys
import threading
import time
import uuid
import webbrowser
from contextlib import contextmanager
from urllib.parse import urlencode, urlsplit

import requests

from ._scrubber import scrub_mapping
from ._stacktrace import current_frames, extract_exception_chain

logger = logging.getLogger(__name__)

LEVELS = ("fatal", "error", "warning", "info", "debug")
MAX_PAYLOAD = 102_400

_SENTINEL = object()


class Dsn:
    """Parsed ``scheme://key@host[:port]/[prefix/]project`` DSN."""

    def __init__(self, raw):
        try:
            parts = urlsplit(raw)
            port = parts.port
        except (TypeError, ValueError, AttributeError):
            raise ValueError(f"malformed DSN: {raw!r}") from None
        if parts.scheme not in ("http", "https") or not parts.username or not parts.hostname:
            raise ValueError(f"malformed DSN: {raw!r}")
        prefix, _, project_id = parts.path.rstrip("/").rpartition("/")
        if not project_id:
            raise ValueError(f"DSN has no project id: {raw!r}")

        self.raw = raw
        self.scheme = parts.scheme
        self.public_key = parts.username
        self.project_id = project_id
        self.netloc = parts.hostname if port is None else f"{parts.hostname}:{port}"
        self.base = f"{self.scheme}://{self.netloc}{prefix}"

    @property
    def store_endpoint(self):
        return f"{self.base}/api/{self.project_id}/store/"

    @property
    def error_page_endpoint(self):
        return f"{self.base}/api/embed/error-page/"

    def auth_header(self, client_name):
        return f"Sentry sentry_version=7, sentry_client={client_name}, sentry_key={self.public_key}"


class Scope:
    """Context merged into every event captured while the scope is active."""

    def __init__(self):
        self.tags = {}
        self.user = None
        self.extra = {}
        self.fingerprint = None
        self.level = None

    def set_tag(self, key, value):
        self.tags[str(key)] = str(value)

    def set_user(self, user):
        self.user = dict(user) if user else None

    def set_extra(self, key, value):
        self.extra[key] = value

    def set_fingerprint(self, fingerprint):
        self.fingerprint = [str(part) for part in fingerprint] if fingerprint else None

    def set_level(self, level):
        self.level = level

    def copy(self):
        scope = Scope()
        scope.tags = dict(self.tags)
        scope.user = dict(self.user) if self.user else None
        scope.extra = dict(self.extra)
        scope.fingerprint = list(self.fingerprint) if self.fingerprint else None
        scope.level = self.level
        return scope

    def apply(self, event):
        if self.tags:
            event["tags"] = dict(self.tags)
        if self.user:
            event["user"] = dict(self.user)
        if self.extra:
            event["extra"] = scrub_mapping(dict(self.extra))
        if self.fingerprint:
            event["fingerprint"] = list(self.fingerprint)
        if self.level and "level" not in event:
            event["level"] = self.level
        return event


class ReportingClient:
    """Error-reporting client installed into the host by the SDK loader.

    The client is inert until ``init`` is called. ``init`` may be called
    again at any time; the latest options replace the previous ones.
    """

    def __init__(self, dialog_opener=None):
        self.dsn = None
        self.options = None
        self.dialog_opener = dialog_opener or webbrowser.open
        self._scope = Scope()
        self._local = threading.local()
        self._last_event_id = None
        self._queue = queue.Queue(maxsize=100)
        self._worker = None
        self._worker_started = False
        self._lock = threading.Lock()
        atexit.register(self._flush)

    @property
    def initialized(self):
        return self.options is not None

    def init(self, dsn, environment="Prod", debug=False, before_send=None):
        """Configure the client. Raises ValueError on a malformed DSN."""
        parsed = Dsn(dsn)
        with self._lock:
            self.dsn = parsed
            self.options = {
                "dsn": dsn,
                "environment": environment or "Prod",
                "debug": bool(debug),
                "before_send": before_send,
            }
        if debug:
            logger.debug("client initialized for %s (environment=%s)", parsed.store_endpoint, environment)

    # --- scopes ---

    def _scope_stack(self):
        stack = getattr(self._local, "stack", None)
        if stack is None:
            stack = self._local.stack = []
        return stack

    def current_scope(self):
        stack = self._scope_stack()
        return stack[-1] if stack else self._scope

    def configure_scope(self, callback):
        """Run callback against the global scope."""
        callback(self._scope)

    @contextmanager
    def push_scope(self):
        """Temporary scope layered on the current one, discarded on exit."""
        stack = self._scope_stack()
        scope = self.current_scope().copy()
        stack.append(scope)
        try:
            yield scope
        finally:
            stack.pop()

    def with_scope(self, callback):
        with self.push_scope() as scope:
            return callback(scope)

    # --- capture ---

    def capture_exception(self, exc=None):
        """Capture an exception. Uses sys.exc_info() if exc is None.

        Returns the event id, or None when nothing was captured.
        """
        if exc is None:
            exc = sys.exc_info()[1]
        if exc is None or not self.initialized:
            return None

        try:
            values = list(reversed(extract_exception_chain(exc)))
        except Exception:
            values = [{"type": type(exc).__name__, "value": str(exc), "stacktrace": {"frames": []}}]
        if exc.__traceback__ is None and values:
            values[-1]["stacktrace"] = {"frames": current_frames(skip=1)}

        event = {
            "level": "error",
            "message": str(exc),
            "exception": {"values": values},
        }
        return self._capture_event(event)

    def capture_message(self, message, level="info"):
        if not self.initialized:
            return None
        if level not in LEVELS:
            raise ValueError(f"unknown level: {level!r}")
        return self._capture_event({"level": level, "message": str(message)})

    def last_event_id(self):
        return self._last_event_id

    def _capture_event(self, event):
        from . import __version__

        options = self.options
        event["event_id"] = uuid.uuid4().hex
        event["timestamp"] = time.time()
        event["platform"] = "python"
        event["environment"] = options["environment"]
        event["sdk"] = {"name": "errorgate.python", "version": __version__}
        event["contexts"] = {
            "runtime": {"name": "Python", "version": platform.python_version()},
        }
        self.current_scope().apply(event)

        before_send = options["before_send"]
        if callable(before_send):
            event = before_send(event)
            if event is None:
                if options["debug"]:
                    logger.debug("event dropped by before_send")
                return None

        if options["debug"]:
            logger.debug("captured %s event %s", event.get("level"), event["event_id"])
        self._last_event_id = event["event_id"]

        try:
            if self._ensure_worker():
                try:
                    self._queue.put_nowait(event)
                except queue.Full:
                    logger.debug("event queue full, dropping %s", event["event_id"])
            else:
                self._do_send(event)  # sync fallback
        except Exception:
            logger.debug("failed to enqueue event", exc_info=True)
        return event["event_id"]

    # --- user feedback ---

    def show_report_dialog(self, options=None):
        """Open the hosted feedback form for an event. Returns its URL."""
        options = dict(options or {})
        if not self.initialized:
            raise ValueError("client is not initialized")
        event_id = options.pop("eventId", None) or self._last_event_id
        if not event_id:
            raise ValueError("Missing eventId")
        params = {"dsn": self.options["dsn"], "eventId": event_id}
        params.update((k, v) for k, v in options.items() if v is not None)
        url = f"{self.dsn.error_page_endpoint}?{urlencode(params)}"
        self.dialog_opener(url)
        return url

    # --- transport ---

    def _ensure_worker(self):
        """Lazily start the background worker thread. Returns False if thread creation fails."""
        if self._worker_started:
            return True
        with self._lock:
            if self._worker_started:
                return True
            try:
                self._worker = threading.Thread(target=self._worker_loop, daemon=True)
                self._worker.start()
                self._worker_started = True
                return True
            except RuntimeError:
                return False

    def _worker_loop(self):
        """Background thread: drain queue, send events, exit on sentinel."""
        while True:
            try:
                item = self._queue.get()
                try:
                    if item is _SENTINEL:
                        return
                    self._do_send(item)
                finally:
                    self._queue.task_done()
            except Exception:
                logger.debug("worker failed to send event", exc_info=True)

    def _flush(self):
        """Wait for background worker to drain (called at exit)."""
        try:
            if not self._worker_started:
                return
            self._queue.put_nowait(_SENTINEL)
            self._worker.join(timeout=5)
        except Exception:
            pass

    def _do_send(self, event):
        try:
            from . import __version__

            data = json.dumps(event, default=str).encode("utf-8")
            if len(data) > MAX_PAYLOAD:
                logger.debug("event %s too large (%d bytes), dropped", event.get("event_id"), len(data))
                return
            requests.post(
                self.dsn.store_endpoint,
                data=data,
                headers={
                    "X-Sentry-Auth": self.dsn.auth_header(f"errorgate.python/{__version__}"),
                    "Content-Type": "application/json",
                },
                timeout=5,
            )
        except Exception:
            logger.debug("failed to deliver event", exc_info=True)
