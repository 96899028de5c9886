import threading

import pytest

from errorgate._client import ReportingClient
from errorgate._loader import SDK_RESOURCE, Host, ScriptLoader, SdkLoadError, is_legacy_agent, resolve_resource

IE8 = "Mozilla/4.0 (compatible; MSIE 8.0; Windows NT 6.1; Trident/4.0)"
IE10 = "Mozilla/5.0 (compatible; MSIE 10.0; Windows NT 6.1; Trident/6.0)"
CHROME = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"

# --- is_legacy_agent ---


def test_old_ie_is_legacy():
    assert is_legacy_agent(IE8) is True


def test_newer_ie_is_not_legacy():
    assert is_legacy_agent(IE10) is False


def test_non_ie_is_not_legacy():
    assert is_legacy_agent(CHROME) is False
    assert is_legacy_agent("") is False
    assert is_legacy_agent(None) is False


def test_floor_is_configurable():
    assert is_legacy_agent(IE10, floor=11) is True
    assert is_legacy_agent(IE8, floor=8) is False


# --- resolve_resource ---


def test_resolve_default_resource():
    assert resolve_resource(SDK_RESOURCE) is ReportingClient


@pytest.mark.parametrize("resource", ["", "errorgate._client", ":ReportingClient", None])
def test_resolve_malformed_resource(resource):
    with pytest.raises(SdkLoadError):
        resolve_resource(resource)


def test_resolve_missing_module():
    with pytest.raises(SdkLoadError):
        resolve_resource("errorgate_does_not_exist:Client")


def test_resolve_missing_attribute():
    with pytest.raises(SdkLoadError):
        resolve_resource("errorgate._client:Nope")


# --- ScriptLoader ---


def test_inject_installs_client_and_calls_on_load():
    host = Host()
    loaded = []
    ScriptLoader(host, threaded=False).inject(SDK_RESOURCE, lambda: loaded.append(True))

    assert isinstance(host.client, ReportingClient)
    assert host.injected == [SDK_RESOURCE]
    assert loaded == [True]


def test_inject_keeps_existing_client():
    host = Host()
    existing = ReportingClient()
    host.client = existing
    ScriptLoader(host, threaded=False).inject(SDK_RESOURCE, lambda: None)
    assert host.client is existing


def test_inject_failure_calls_on_error():
    host = Host()
    loaded, errors = [], []
    ScriptLoader(host, threaded=False).inject("nope:Client", lambda: loaded.append(True), errors.append)

    assert loaded == []
    assert len(errors) == 1
    assert isinstance(errors[0], SdkLoadError)
    assert host.client is None


def test_inject_factory_failure_calls_on_error(monkeypatch):
    host = Host()
    errors = []

    def broken():
        raise RuntimeError("boom")

    monkeypatch.setattr("errorgate._client.ReportingClient", broken)
    ScriptLoader(host, threaded=False).inject(SDK_RESOURCE, lambda: None, errors.append)

    assert isinstance(errors[0], SdkLoadError)


def test_inject_threaded_loads_in_background():
    host = Host()
    done = threading.Event()
    ScriptLoader(host).inject(SDK_RESOURCE, done.set)

    assert done.wait(timeout=5)
    assert isinstance(host.client, ReportingClient)


def test_inject_module_raising_at_import_calls_on_error(tmp_path, monkeypatch):
    (tmp_path / "errorgate_broken_sdk.py").write_text('raise RuntimeError("sdk bundle is corrupt")\n')
    monkeypatch.syspath_prepend(str(tmp_path))
    host = Host()
    loaded, errors = [], []
    failed = threading.Event()

    def on_error(exc):
        errors.append(exc)
        failed.set()

    ScriptLoader(host).inject("errorgate_broken_sdk:Client", lambda: loaded.append(True), on_error)

    assert failed.wait(timeout=5)
    assert loaded == []
    assert isinstance(errors[0], SdkLoadError)
    assert isinstance(errors[0].__cause__, RuntimeError)
    assert host.client is None


def test_inject_on_load_failure_calls_on_error():
    host = Host()
    errors = []

    def on_load():
        raise RuntimeError("init exploded")

    ScriptLoader(host, threaded=False).inject(SDK_RESOURCE, on_load, errors.append)

    assert len(errors) == 1
    assert isinstance(errors[0], RuntimeError)
