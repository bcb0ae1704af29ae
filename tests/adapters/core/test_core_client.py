import json

import httpx
import pytest

from dhcore.adapters.core_api import CoreClient
from dhcore.config import CoreConfig
from dhcore.kernel.errors import RemoteError


def make_client(handler, **config):
    cfg = CoreConfig(base_url="http://core.test/", **config)
    return CoreClient(cfg, http_client=httpx.Client(transport=httpx.MockTransport(handler)))


@pytest.fixture
def seen():
    return []


# --- URLs ---

def test_build_url_for_project_scoped_resource():
    client = make_client(lambda r: httpx.Response(200))
    assert client.build_url("proj", "artifacts", "abc") == "http://core.test/api/v1/-/proj/artifacts/abc"
    assert client.build_url("proj", "artifacts") == "http://core.test/api/v1/-/proj/artifacts"


def test_build_url_for_projects_omits_project_segment():
    client = make_client(lambda r: httpx.Response(200), api_version="v2")
    assert client.build_url("ignored", "projects", "p1") == "http://core.test/api/v2/projects/p1"


def test_build_url_encodes_params_and_drops_empty_ones():
    client = make_client(lambda r: httpx.Response(200))
    url = client.build_url("proj", "artifacts", params={"name": "my data", "versions": "latest", "kind": ""})

    parsed = httpx.URL(url)
    assert parsed.path == "/api/v1/-/proj/artifacts"
    assert dict(parsed.params) == {"name": "my data", "versions": "latest"}


# --- Requests ---

def test_do_sends_json_and_auth_headers(seen):
    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    client = make_client(handler, access_token="tok")
    body = client.do("PUT", "http://core.test/api/v1/-/p/artifacts/1", {"status": {"state": "READY"}})

    assert body == {"ok": True}
    request = seen[0]
    assert request.headers["Authorization"] == "Bearer tok"
    assert request.headers["Content-Type"] == "application/json"
    assert json.loads(request.content) == {"status": {"state": "READY"}}


def test_do_uses_basic_auth_when_configured(seen):
    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={})

    client = make_client(handler, basic_auth_username="user", basic_auth_password="pw")
    client.get("http://core.test/api/v1/projects")

    assert seen[0].headers["Authorization"].startswith("Basic ")


def test_error_response_uses_message_field():
    client = make_client(lambda r: httpx.Response(409, json={"message": "duplicated entity"}))

    with pytest.raises(RemoteError) as excinfo:
        client.get("http://core.test/api/v1/projects/p")

    assert excinfo.value.status_code == 409
    assert excinfo.value.message == "duplicated entity"
    assert str(excinfo.value) == "core responded with 409: duplicated entity"


def test_error_response_without_json_uses_reason_phrase():
    client = make_client(lambda r: httpx.Response(502, text="<html>bad gateway</html>"))

    with pytest.raises(RemoteError) as excinfo:
        client.get("http://core.test/api/v1/projects/p")
    assert excinfo.value.message == "Bad Gateway"


def test_transport_failure_is_remote_error_without_status():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)
    with pytest.raises(RemoteError) as excinfo:
        client.get("http://core.test/api/v1/projects/p")
    assert excinfo.value.status_code is None


def test_empty_body_returns_none():
    client = make_client(lambda r: httpx.Response(204))
    assert client.do("DELETE", "http://core.test/api/v1/projects/p") is None


def test_invalid_json_is_remote_error():
    client = make_client(lambda r: httpx.Response(200, text="not json"))
    with pytest.raises(RemoteError, match="invalid JSON"):
        client.get("http://core.test/api/v1/projects/p")
