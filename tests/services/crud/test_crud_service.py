import json

import httpx
import pytest

from dhcore.adapters.core_api import CoreClient
from dhcore.config import CoreConfig
from dhcore.kernel.errors import InvalidInputError
from dhcore.services.crud import CrudService, first_if_list, resource_endpoint


class RecordingCore:
    """Answers every request from a queue of canned responses."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.requests = []
        self.client = CoreClient(
            CoreConfig(base_url="http://core.test"),
            http_client=httpx.Client(transport=httpx.MockTransport(self.handle)),
        )

    def handle(self, request):
        self.requests.append(request)
        if self.responses:
            return self.responses.pop(0)
        return httpx.Response(200, json={})


@pytest.fixture
def recorder():
    return RecordingCore()


@pytest.fixture
def crud(recorder):
    return CrudService(recorder.client)


def test_create_drops_user_and_forces_project(crud, recorder):
    crud.create("proj", "artifacts", {"id": "x", "name": "n", "user": "someone", "project": "other"}, reset_id=True)

    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/api/v1/-/proj/artifacts"
    assert json.loads(request.content) == {"name": "n", "project": "proj"}


def test_create_project_keeps_body_project_free(crud, recorder):
    crud.create(None, "projects", {"name": "new-project"})

    assert recorder.requests[0].url.path == "/api/v1/projects"
    assert json.loads(recorder.requests[0].content) == {"name": "new-project"}


def test_create_requires_project_for_scoped_resources(crud):
    with pytest.raises(InvalidInputError, match="project is mandatory"):
        crud.create("", "artifacts", {"name": "n"})


def test_get_by_name_returns_latest_version():
    recorder = RecordingCore([httpx.Response(200, json={"content": [{"id": "v2", "name": "n"}]})])

    doc = CrudService(recorder.client).get("proj", "artifacts", name="n")

    assert doc == {"id": "v2", "name": "n"}
    assert dict(recorder.requests[0].url.params) == {"name": "n", "versions": "latest"}


def test_get_requires_id_or_name(crud):
    with pytest.raises(InvalidInputError, match="id or name"):
        crud.get("proj", "artifacts")


def test_list_all_pages_follows_page_numbers():
    recorder = RecordingCore([
        httpx.Response(200, json={"content": [{"id": 1}, {"id": 2}], "pageable": {"pageNumber": 0}, "totalPages": 3}),
        httpx.Response(200, json={"content": [{"id": 3}], "pageable": {"pageNumber": 1}, "totalPages": 3}),
        httpx.Response(200, json={"content": [{"id": 4}], "pageable": {"pageNumber": 2}, "totalPages": 3}),
    ])

    elements = CrudService(recorder.client).list_all_pages("proj", "artifacts", {"kind": "artifact"})

    assert [e["id"] for e in elements] == [1, 2, 3, 4]
    pages = [dict(r.url.params).get("page") for r in recorder.requests]
    assert pages == [None, "1", "2"]
    assert all(dict(r.url.params)["kind"] == "artifact" for r in recorder.requests)


def test_list_all_pages_single_page_without_pageable():
    recorder = RecordingCore([httpx.Response(200, json={"content": [{"id": 1}]})])
    assert CrudService(recorder.client).list_all_pages("proj", "runs") == [{"id": 1}]


def test_update_puts_document(crud, recorder):
    crud.update("proj", "artifacts", "abc", {"name": "n"})

    assert recorder.requests[0].method == "PUT"
    assert recorder.requests[0].url.path == "/api/v1/-/proj/artifacts/abc"


@pytest.mark.parametrize(
    "id, document, error_msg_regex",
    [("", {"name": "n"}, "id is required"), ("abc", {}, "empty body")]
)
def test_update_invalid_inputs(crud, id, document, error_msg_regex):
    with pytest.raises(InvalidInputError, match=error_msg_regex):
        crud.update("proj", "artifacts", id, document)


def test_delete_by_name_removes_all_versions(crud, recorder):
    crud.delete("proj", "artifacts", name="n", cascade=True)

    request = recorder.requests[0]
    assert request.method == "DELETE"
    assert request.url.path == "/api/v1/-/proj/artifacts"
    assert dict(request.url.params) == {"cascade": "true", "name": "n", "versions": "all"}


def test_delete_project_by_name_uses_id_segment(crud, recorder):
    crud.delete(None, "projects", name="old")

    assert recorder.requests[0].url.path == "/api/v1/projects/old"
    assert dict(recorder.requests[0].url.params) == {"cascade": "false"}


@pytest.mark.parametrize(
    "alias, expected",
    [("artifact", "artifacts"), ("artifacts", "artifacts"), ("fn", "functions"), ("run", "runs")]
)
def test_resource_endpoint(alias, expected):
    assert resource_endpoint(alias) == expected


def test_resource_endpoint_unknown_alias():
    with pytest.raises(InvalidInputError):
        resource_endpoint("spaceship")


def test_first_if_list():
    assert first_if_list({"content": [{"id": 1}, {"id": 2}]}) == {"id": 1}
    assert first_if_list({"id": 3}) == {"id": 3}
