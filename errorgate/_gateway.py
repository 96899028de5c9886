import collections
import logging
import threading
from collections.abc import Mapping
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout

from ._client import LEVELS
from ._config import ReportingConfig
from ._loader import LEGACY_FLOOR, SDK_RESOURCE, Host, ScriptLoader, SdkLoadError, is_legacy_agent
from ._result import OK, PENDING, QUEUED, SDK_UNAVAILABLE, UNSUPPORTED, Result, Status

logger = logging.getLogger(__name__)

FEEDBACK_LABELS = {
    "title": "用户反馈收集",
    "lang": "zh",
    "subtitle": "",
    "subtitle2": "",
    "labelName": "姓名",
    "labelEmail": "邮箱",
    "labelComments": "反馈内容",
    "labelClose": "关闭",
    "labelSubmit": "提交",
    "errorGeneric": "网络异常，请重试！",
    "errorFormEntry": "为了更好地帮助您解决问题，请正确填写反馈内容。",
    "successMessage": "您的反馈已发送。谢谢！",
}


class ReportedError(Exception):
    """Synthetic exception captured by report_exception."""


def _coerce_config(config):
    if isinstance(config, ReportingConfig):
        return config
    if isinstance(config, dict):
        return ReportingConfig(**config)
    raise TypeError(f"expected ReportingConfig or dict, got {type(config).__name__}")


def _normalize_tags(tags):
    """Turn tags into (key, value) pairs.

    Accepts a mapping, (key, value) pairs or {"key": ..., "value": ...} dicts.
    """
    if not tags:
        return []
    if isinstance(tags, dict):
        return [(str(k), str(v)) for k, v in tags.items()]
    pairs = []
    for tag in tags:
        if isinstance(tag, dict):
            pairs.append((str(tag["key"]), str(tag["value"])))
        else:
            key, value = tag
            pairs.append((str(key), str(value)))
    return pairs


def _normalize_fingerprint(fingerprint):
    if not fingerprint:
        return None
    if isinstance(fingerprint, str):
        return [fingerprint]
    return [str(part) for part in fingerprint]


class ErrorReportingGateway:
    """Loads the reporting client once, then enriches and forwards events.

    No public method raises. Each returns a Result describing what happened;
    reporting degrades to no-ops while the client is unavailable.

    Scope enrichment issued before the client is ready is dropped unless
    ``pending_limit`` is positive, in which case up to that many calls are
    kept (oldest first out) and replayed once the client is ready.

    While a load is in flight, a further ``ensure_client`` replaces the
    pending config and callbacks: only the latest caller's ``on_ready`` runs,
    earlier callers are not notified. Wait on ``ready`` instead when several
    callers need to know.
    """

    def __init__(self, host=None, loader=None, resource=SDK_RESOURCE, legacy_floor=LEGACY_FLOOR, pending_limit=0):
        self.host = host if host is not None else Host()
        self.loader = loader if loader is not None else ScriptLoader(self.host)
        self.resource = resource
        self.legacy_floor = legacy_floor
        self.config = None
        self.ready = Future()
        self._ready = False
        self._loading = False
        self._pending_init = None
        self._pending = collections.deque(maxlen=pending_limit) if pending_limit > 0 else None
        self._lock = threading.Lock()

    @property
    def is_ready(self):
        return self._ready

    def wait_ready(self, timeout=None):
        """Block until the first load attempt settles. PENDING on timeout."""
        try:
            return self.ready.result(timeout=timeout)
        except FutureTimeout:
            return PENDING

    def _resolve(self, result):
        with self._lock:
            if not self.ready.done():
                self.ready.set_result(result)

    def _is_legacy(self):
        return is_legacy_agent(self.host.user_agent, self.legacy_floor)

    # --- loading and initialization ---

    def ensure_client(self, config, on_ready=None, before_send=None):
        """Make sure the client is loaded, then initialize it with ``config``."""
        try:
            config = _coerce_config(config)
        except (TypeError, ValueError) as exc:
            logger.warning("invalid reporting config: %s", exc)
            return Result(Status.INVALID_INPUT, error=exc)

        if self._is_legacy():
            logger.debug("legacy user agent %r, reporting disabled", self.host.user_agent)
            return UNSUPPORTED
        if self.host.client is not None:
            return self._initialize(config, on_ready, before_send)

        with self._lock:
            self._pending_init = (config, on_ready, before_send)
            if self._loading:
                return PENDING
            self._loading = True
            if self.ready.done():
                self.ready = Future()
        try:
            self.loader.inject(self.resource, self._on_load, self._on_load_error)
        except Exception as exc:
            logger.warning("failed to inject reporting SDK", exc_info=True)
            self._on_load_error(exc)
            return Result(Status.LOAD_FAILED, error=exc)
        return PENDING

    def initialize(self, config, on_ready=None, before_send=None):
        """(Re)initialize the client. The latest call wins."""
        try:
            config = _coerce_config(config)
        except (TypeError, ValueError) as exc:
            logger.warning("invalid reporting config: %s", exc)
            return Result(Status.INVALID_INPUT, error=exc)

        if self._is_legacy():
            return UNSUPPORTED
        if self.host.client is None:
            return self.ensure_client(config, on_ready, before_send)
        return self._initialize(config, on_ready, before_send)

    def _on_load(self):
        with self._lock:
            pending, self._pending_init = self._pending_init, None
            self._loading = False
        if pending is not None:
            self._initialize(*pending)

    def _on_load_error(self, exc):
        with self._lock:
            self._pending_init = None
            self._loading = False
        self._resolve(Result(Status.LOAD_FAILED, error=exc))

    def _initialize(self, config, on_ready, before_send):
        client = self.host.client
        if client is None:
            exc = SdkLoadError("SDK loaded but no client was installed")
            logger.warning("%s", exc)
            result = Result(Status.LOAD_FAILED, error=exc)
            self._resolve(result)
            return result

        try:
            client.init(
                config.dsn,
                environment=config.environment.value,
                debug=config.debug,
                before_send=self._before_send,
            )
        except ValueError as exc:
            logger.warning("failed to initialize reporting client: %s", exc)
            result = Result(Status.INVALID_INPUT, error=exc)
            self._resolve(result)
            return result
        except Exception as exc:
            logger.warning("failed to initialize reporting client", exc_info=True)
            result = Result(Status.LOAD_FAILED, error=exc)
            self._resolve(result)
            return result

        if callable(before_send):
            self.host.before_send = before_send

        with self._lock:
            self.config = config
            self._ready = True
            replay = list(self._pending or ())
            if self._pending is not None:
                self._pending.clear()
        for tags, user in replay:
            try:
                self._apply_scope(client, tags, user)
            except Exception:
                logger.warning("failed to replay scope enrichment", exc_info=True)

        self._resolve(OK)
        if on_ready is not None:
            try:
                on_ready()
            except Exception:
                logger.warning("on_ready callback failed", exc_info=True)
        return OK

    def _before_send(self, event):
        callback = self.host.before_send
        if callable(callback):
            try:
                callback(event)
            except Exception:
                logger.warning("before_send callback failed", exc_info=True)
        return event

    # --- enrichment ---

    def _ready_client(self):
        if not self._ready:
            return None
        return self.host.client

    def enrich_scope(self, tags=None, user=None):
        """Apply tags and/or a user identity to the global scope."""
        try:
            pairs = _normalize_tags(tags)
        except (TypeError, ValueError, KeyError) as exc:
            logger.warning("invalid tags: %r", tags)
            return Result(Status.INVALID_INPUT, error=exc)
        if user and not isinstance(user, Mapping):
            logger.warning("invalid user: %r", user)
            return Result(Status.INVALID_INPUT, error=TypeError(f"user must be a mapping, got {type(user).__name__}"))

        with self._lock:
            if not self._ready:
                if self._pending is None:
                    return SDK_UNAVAILABLE
                self._pending.append((pairs, user))
                return QUEUED
        client = self.host.client
        try:
            self._apply_scope(client, pairs, user)
        except (TypeError, ValueError) as exc:
            logger.warning("invalid user: %r", user)
            return Result(Status.INVALID_INPUT, error=exc)
        except Exception as exc:
            logger.warning("failed to enrich scope", exc_info=True)
            return Result(Status.SDK_UNAVAILABLE, error=exc)
        return OK

    def _apply_scope(self, client, pairs, user):
        def configure(scope):
            for key, value in pairs:
                scope.set_tag(key, value)
            if user:
                scope.set_user(user)

        client.configure_scope(configure)

    # --- reporting ---

    def report_exception(self, title, extra=None, fingerprint=None, user=None):
        """Capture a ReportedError(title) with ``extra`` as its remark. Level is error."""
        client = self._ready_client()
        if client is None:
            return SDK_UNAVAILABLE

        def capture(scope):
            fp = _normalize_fingerprint(fingerprint)
            if fp:
                scope.set_fingerprint(fp)
            if user:
                scope.set_user(user)
            scope.set_extra("remark", extra or "")
            return client.capture_exception(ReportedError(title))

        return self._capture(client, capture)

    def report_message(self, title, extra=None, level="info", fingerprint=None, user=None):
        client = self._ready_client()
        if client is None:
            return SDK_UNAVAILABLE
        level = level or "info"
        if level not in LEVELS:
            logger.warning("unknown level %r", level)
            return Result(Status.INVALID_INPUT, error=ValueError(f"unknown level: {level!r}"))

        def capture(scope):
            fp = _normalize_fingerprint(fingerprint)
            if fp:
                scope.set_fingerprint(fp)
            if user:
                scope.set_user(user)
            scope.set_extra("remark", extra or "")
            return client.capture_message(title, level)

        return self._capture(client, capture)

    def _capture(self, client, capture):
        try:
            event_id = client.with_scope(capture)
        except (TypeError, ValueError) as exc:
            logger.warning("malformed event: %s", exc)
            return Result(Status.INVALID_INPUT, error=exc)
        except Exception as exc:
            logger.warning("failed to capture event", exc_info=True)
            return Result(Status.SDK_UNAVAILABLE, error=exc)
        return Result(Status.OK, event_id=event_id)

    def show_feedback_dialog(self, event_id=None):
        """Open the feedback form for ``event_id`` or the last captured event."""
        client = self._ready_client()
        if client is None:
            return SDK_UNAVAILABLE
        options = dict(FEEDBACK_LABELS, eventId=event_id or client.last_event_id())
        try:
            client.show_report_dialog(options)
        except ValueError as exc:
            logger.warning("cannot show feedback dialog: %s", exc)
            return Result(Status.INVALID_INPUT, error=exc)
        except Exception as exc:
            logger.warning("failed to show feedback dialog", exc_info=True)
            return Result(Status.SDK_UNAVAILABLE, error=exc)
        return Result(Status.OK, event_id=options["eventId"])
