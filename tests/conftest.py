import json
import pytest
import idrac_core as core

BASE = "https://192.0.2.10"
HOST = "192.0.2.10"

class FakeResponse:
    def __init__(self, status_code, payload=None, text=None, headers=None):
        self.status_code = status_code
        self.text = text if text is not None else (json.dumps(payload) if payload is not None else "")
        self.headers = headers or {}

class FakeSession:
    """Records every request; replies from a (method, path) -> response table."""
    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []
        self.closed = False

    def request(self, method, url, **kw):
        path = url[len(BASE):] if url.startswith(BASE) else url
        self.calls.append(dict(kw, method=method, path=path))
        resp = self.routes.get((method, path))
        if resp is None:
            return FakeResponse(404, text='{"error": "not found"}')
        if isinstance(resp, list):
            resp = resp.pop(0) if len(resp) > 1 else resp[0]
        if isinstance(resp, Exception):
            raise resp
        return resp

    def close(self):
        self.closed = True

    def paths(self, method=None):
        return [c["path"] for c in self.calls if method is None or c["method"] == method]

@pytest.fixture
def make_client():
    def _make(routes=None, token=None, **ctx_kw):
        creds = core.Credentials(token=token) if token else core.Credentials(user="root", password="calvin")
        sess = FakeSession(routes)
        client = core.RedfishClient(core.Context(base=BASE, creds=creds, **ctx_kw), session=sess)
        return client, sess
    return _make

@pytest.fixture
def patch_session(monkeypatch):
    def _patch(routes=None):
        sess = FakeSession(routes)
        real = core.RedfishClient
        monkeypatch.setattr(core, "RedfishClient", lambda ctx: real(ctx, session=sess))
        return sess
    return _patch

@pytest.fixture
def no_config(tmp_path):
    return str(tmp_path / "missing.ini")

@pytest.fixture
def no_sleep(monkeypatch):
    slept = []
    import idrac_power
    monkeypatch.setattr(idrac_power.time, "sleep", lambda s: slept.append(s))
    return slept
