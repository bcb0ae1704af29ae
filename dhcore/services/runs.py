from typing import Any, Mapping, Optional

from dhcore.adapters.core_api import CoreClient
from dhcore.internal.constants import RUNS_RESOURCE
from dhcore.internal.logging import get_logger
from dhcore.kernel.errors import InvalidInputError, RemoteError
from dhcore.services.crud import first_if_list

logger = get_logger(__name__)

FUNCTIONS_RESOURCE = "functions"
TASKS_RESOURCE = "tasks"


def task_to_run_kind(task: str) -> str:
    """`python+job` or `python+job:task` -> `python+job:run`."""
    task = task.strip()
    if not task:
        return task
    return task.split(":", 1)[0] + ":run"


def default_container(task: str, run_id: str) -> str:
    """Name of the main container of a run, derived from `spec.task`."""
    if ":" not in task:
        raise RemoteError(f"invalid task format in spec: {task!r}")
    return f"c-{task.split(':', 1)[0].replace('+', '')}-{run_id}"


def _require(**values: Optional[str]) -> None:
    for name, value in values.items():
        if not value:
            raise InvalidInputError(f"{name} not specified")


class RunService:
    """
    Run-level operations: logs, metrics, stop/resume and launching a new run
    of a function.
    """

    def __init__(self, core: CoreClient):
        self.core = core

    def logs(self, project: str, resource: str, id: str) -> list:
        _require(project=project, resource=resource, id=id)
        body = self.core.get(self.core.build_url(project, resource, id) + "/logs")
        if not isinstance(body, list):
            raise RemoteError("invalid logs response: expected a list")
        return body

    def metrics(self, project: str, resource: str, id: str, container: Optional[str] = None) -> Optional[list]:
        """
        `status.metrics` of the log entry for `container` (the run's main
        container by default). None when the run has no metrics.
        """
        entries = self.logs(project, resource, id)

        if not container:
            run = self.core.get(self.core.build_url(project, resource, id))
            spec = run.get("spec") if isinstance(run, dict) else None
            task = spec.get("task") if isinstance(spec, dict) else None
            if not isinstance(task, str):
                raise RemoteError("invalid resource: missing task in spec")
            container = default_container(task, id)

        for entry in entries:
            status = entry.get("status") if isinstance(entry, dict) else None
            if isinstance(status, dict) and status.get("container") == container:
                metrics = status.get("metrics")
                if metrics is None:
                    logger.info("No metrics for run", run_id=id, container=container)
                    return None
                if not isinstance(metrics, list):
                    raise RemoteError("invalid metrics format")
                return metrics
        raise RemoteError(f"container {container!r} not found")

    def stop(self, project: str, resource: str, id: str) -> Any:
        _require(project=project, resource=resource, id=id)
        logger.info("Stopping run", project=project, run_id=id)
        return self.core.do("POST", self.core.build_url(project, resource, id) + "/stop")

    def resume(self, project: str, resource: str, id: str) -> Any:
        _require(project=project, resource=resource, id=id)
        logger.info("Resuming run", project=project, run_id=id)
        return self.core.do("POST", self.core.build_url(project, resource, id) + "/resume")

    def run(
        self,
        project: str,
        task_kind: str,
        function_id: Optional[str] = None,
        function_name: Optional[str] = None,
        input_spec: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        _require(project=project, task_kind=task_kind)
        function_key = self._function_key(project, function_id, function_name)

        try:
            task_key = self._find_task(project, function_key, task_kind)
        except RemoteError as exc:
            logger.warning("Task lookup failed, creating a new task", function=function_key, error=str(exc))
            task_key = None
        if task_key is None:
            task_key = self._create_task(project, function_key, task_kind)

        spec = dict(input_spec or {})
        spec["task"] = task_key
        spec["function"] = function_key
        spec["local_execution"] = False

        body = {"kind": task_to_run_kind(task_kind), "project": project, "spec": spec}
        created = self.core.do("POST", self.core.build_url(project, RUNS_RESOURCE), body)
        logger.info("Run created", project=project, task=task_key, function=function_key)
        return created

    def _function_key(self, project: str, function_id: Optional[str], function_name: Optional[str]) -> str:
        if function_id:
            fn = self.core.get(self.core.build_url(project, FUNCTIONS_RESOURCE, function_id))
        elif function_name:
            fn = first_if_list(self.core.get(self.core.build_url(project, FUNCTIONS_RESOURCE, params={"name": function_name})))
        else:
            raise InvalidInputError("you must provide the name or ID of the function to run")

        if not isinstance(fn, dict) or not isinstance(fn.get("kind"), str) or "id" not in fn or "name" not in fn:
            raise RemoteError("unable to obtain function key")
        return f"{fn['kind']}://{project}/{fn['name']}:{fn['id']}"

    def _find_task(self, project: str, function_key: str, task_kind: str) -> Optional[str]:
        body = self.core.get(self.core.build_url(project, TASKS_RESOURCE, params={"function": function_key}))
        content = body.get("content") if isinstance(body, dict) else None
        for task in content or []:
            if isinstance(task, dict) and task.get("kind") == task_kind and "id" in task:
                return f"{task_kind}://{project}/{task['id']}"
        return None

    def _create_task(self, project: str, function_key: str, task_kind: str) -> str:
        body = {"kind": task_kind, "project": project, "spec": {"function": function_key}}
        task = first_if_list(self.core.do("POST", self.core.build_url(project, TASKS_RESOURCE), body))
        if not isinstance(task.get("kind"), str) or "id" not in task:
            raise RemoteError("unable to obtain task key")
        logger.info("Task created", project=project, kind=task_kind)
        return f"{task['kind']}://{project}/{task['id']}"
