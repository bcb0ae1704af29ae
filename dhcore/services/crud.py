from typing import Any, Mapping, Optional

from dhcore.adapters.core_api import CoreClient
from dhcore.internal.constants import PROJECTS_RESOURCE, RESOURCES
from dhcore.internal.logging import get_logger
from dhcore.kernel.errors import InvalidInputError, RemoteError

logger = get_logger(__name__)


def resource_endpoint(alias: str) -> str:
    """
    Endpoint name for a resource alias, e.g. `artifact` -> `artifacts`.
    """
    if not alias:
        raise InvalidInputError("resource cannot be empty")
    if alias in RESOURCES:
        return alias
    for endpoint, aliases in RESOURCES.items():
        if alias in aliases:
            return endpoint
    raise InvalidInputError(f"unknown resource {alias!r}")


def first_if_list(body: Any) -> dict:
    """
    First element of a paged listing, or the body itself for a single document.
    """
    if not isinstance(body, dict):
        raise RemoteError("invalid response: expected a JSON object")
    content = body.get("content")
    if isinstance(content, list) and content:
        if not isinstance(content[0], dict):
            raise RemoteError("invalid content element")
        return content[0]
    return body


def _require_project(project: Optional[str], resource: str) -> None:
    if resource != PROJECTS_RESOURCE and not project:
        raise InvalidInputError("project is mandatory for non-project resources")


class CrudService:
    """Create, read, update and delete Core documents."""

    def __init__(self, core: CoreClient):
        self.core = core

    def create(self, project: Optional[str], resource: str, document: Mapping[str, Any], reset_id: bool = False) -> Any:
        _require_project(project, resource)
        body = dict(document)
        body.pop("user", None)
        if resource != PROJECTS_RESOURCE:
            body["project"] = project
        if reset_id:
            body.pop("id", None)

        created = self.core.do("POST", self.core.build_url(project, resource), body)
        logger.info("Resource created", project=project, resource=resource, name=body.get("name"))
        return created

    def get(self, project: Optional[str], resource: str, id: Optional[str] = None, name: Optional[str] = None) -> dict:
        """
        Fetch one document by id, or the latest version of `name`.
        """
        _require_project(project, resource)
        params = {}
        if not id:
            if not name:
                raise InvalidInputError("you must specify id or name")
            params = {"name": name, "versions": "latest"}
        body = self.core.get(self.core.build_url(project, resource, id, params))
        return first_if_list(body)

    def list_all_pages(self, project: Optional[str], resource: str, params: Optional[Mapping[str, Any]] = None) -> list:
        _require_project(project, resource)
        page_params = dict(params or {})
        elements: list = []

        while True:
            body = self.core.get(self.core.build_url(project, resource, params=page_params))
            if not isinstance(body, dict):
                raise RemoteError("invalid page: expected a JSON object")

            content = body.get("content")
            if isinstance(content, list):
                elements.extend(content)

            pageable = body.get("pageable")
            current = pageable.get("pageNumber") if isinstance(pageable, dict) else 0
            current = int(current) if isinstance(current, (int, float)) else 0
            total_pages = body.get("totalPages")
            total_pages = int(total_pages) if isinstance(total_pages, (int, float)) else 1

            if current >= total_pages - 1:
                return elements
            page_params["page"] = str(current + 1)

    def update(self, project: Optional[str], resource: str, id: str, document: Mapping[str, Any]) -> Any:
        _require_project(project, resource)
        if not id:
            raise InvalidInputError("id is required")
        if not document:
            raise InvalidInputError("empty body")
        return self.core.do("PUT", self.core.build_url(project, resource, id), dict(document))

    def delete(
        self,
        project: Optional[str],
        resource: str,
        id: Optional[str] = None,
        name: Optional[str] = None,
        cascade: bool = False,
    ) -> None:
        _require_project(project, resource)
        if not id and not name:
            raise InvalidInputError("you must specify id or name")

        params = {"cascade": "true" if cascade else "false"}
        if not id and resource != PROJECTS_RESOURCE:
            params["name"] = name
            params["versions"] = "all"
        # projects are addressed by name in the id segment
        target = id or (name if resource == PROJECTS_RESOURCE else None)

        self.core.do("DELETE", self.core.build_url(project, resource, target, params))
        logger.info("Resource deleted", project=project, resource=resource, id=id, name=name, cascade=cascade)
