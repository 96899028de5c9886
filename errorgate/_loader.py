import importlib
import logging
import re
import threading

logger = logging.getLogger(__name__)

# Versioned entry point of the reporting SDK, resolved on first load.
SDK_RESOURCE = "errorgate._client:ReportingClient"

LEGACY_FLOOR = 9

_MSIE = re.compile(r"MSIE\s*(\d+)", re.IGNORECASE)


class SdkLoadError(Exception):
    """The SDK resource could not be resolved or instantiated."""


def is_legacy_agent(user_agent, floor=LEGACY_FLOOR):
    """True for Internet Explorer agents older than ``floor``."""
    if not user_agent:
        return False
    match = _MSIE.search(user_agent)
    if match is None:
        return False
    return int(match.group(1)) < int(floor or LEGACY_FLOOR)


def resolve_resource(resource):
    """Import a ``"package.module:attr"`` resource and return the attribute."""
    module_name, sep, attr = (resource or "").partition(":")
    if not module_name or not sep or not attr:
        raise SdkLoadError(f"malformed SDK resource: {resource!r}")
    try:
        module = importlib.import_module(module_name)
    except Exception as exc:
        raise SdkLoadError(f"cannot import {module_name}: {exc}") from exc
    try:
        return getattr(module, attr)
    except AttributeError:
        raise SdkLoadError(f"{module_name} has no attribute {attr!r}") from None


class Host:
    """Process-wide environment the gateway works against.

    Holds the single client slot, the single before-send callback slot and
    the user agent of whoever embeds the reporter.
    """

    def __init__(self, user_agent=""):
        self.user_agent = user_agent
        self.client = None
        self.before_send = None
        self.injected = []


class ScriptLoader:
    """Loads the SDK on a background thread and installs it into the host."""

    def __init__(self, host, threaded=True):
        self.host = host
        self.threaded = threaded

    def inject(self, resource, on_load, on_error=None):
        """Start loading ``resource``. ``on_load`` runs once the client is installed.

        There is no timeout: if loading never finishes, neither callback runs.
        """
        self.host.injected.append(resource)
        if not self.threaded:
            self._load(resource, on_load, on_error)
            return
        thread = threading.Thread(
            target=self._load,
            args=(resource, on_load, on_error),
            name="errorgate-sdk-loader",
            daemon=True,
        )
        thread.start()

    def _load(self, resource, on_load, on_error):
        try:
            factory = resolve_resource(resource)
            if self.host.client is None:
                try:
                    self.host.client = factory()
                except Exception as exc:
                    raise SdkLoadError(f"cannot instantiate {resource}: {exc}") from exc
        except SdkLoadError as exc:
            logger.warning("failed to load reporting SDK: %s", exc)
            self._notify_error(on_error, exc)
            return
        try:
            on_load()
        except Exception as exc:
            logger.warning("reporting SDK load callback failed", exc_info=True)
            self._notify_error(on_error, exc)

    def _notify_error(self, on_error, exc):
        if on_error is None:
            return
        try:
            on_error(exc)
        except Exception:
            logger.warning("reporting SDK error callback failed", exc_info=True)
