"""
Artifact transfer service.

Upload drives the remote lifecycle CREATED -> UPLOADING -> READY | ERROR
around the object store writes; download resolves one or many storage
locators from Core documents and pulls them to local disk, skipping the
ones that fail.
"""
import os
import threading
import uuid
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from rich.console import Console

from dhcore.adapters.core_api import CoreClient
from dhcore.adapters.http_fetch import HttpFetcher
from dhcore.adapters.s3_store import S3ObjectStore
from dhcore.config import Config
from dhcore.internal.constants import (
    DEFAULT_BUCKET,
    HTTP_SCHEMES,
    PROJECTS_RESOURCE,
    RUNS_RESOURCE,
    S3_SCHEME,
)
from dhcore.internal.logging import get_logger
from dhcore.kernel.contracts import (
    ArtifactState,
    DownloadInfo,
    DownloadRequest,
    FileInfo,
    ProgressHook,
    UploadRequest,
    UploadResult,
    document_state,
)
from dhcore.kernel.errors import (
    InvalidInputError,
    InvalidPathError,
    InvalidStateError,
    PartialSuccessError,
    RemoteError,
    TransferCancelledError,
    TransferError,
)
from dhcore.kernel.locator import ParsedPath, join_key, parse_path, safe_local_path
from dhcore.kernel.merge import merge
from dhcore.kernel.progress import AggregatingHook, FileProgressHook, GlobalProgress

logger = get_logger(__name__)

ProgressFactory = Callable[[Optional[int]], GlobalProgress]


# ---------------------------------------------------------------------
# Remote document helpers
# ---------------------------------------------------------------------

class RemoteDocument:
    """
    Last-read snapshot of a Core document. Updates merge onto the snapshot
    and PUT the whole document; the snapshot only advances when the PUT
    succeeds.
    """

    def __init__(self, core: CoreClient, url: str, snapshot: dict):
        self.core = core
        self.url = url
        self.snapshot = snapshot

    def update(self, section: str, changes: dict) -> dict:
        current = self.snapshot.get(section)
        if not isinstance(current, dict):
            current = {}
        candidate = dict(self.snapshot)
        candidate[section] = merge(current, changes)
        self.core.do("PUT", self.url, candidate)
        self.snapshot = candidate
        return candidate


def add_relationship(document: dict, rel_type: str, dest: str) -> dict:
    metadata = document.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}
    existing = metadata.get("relationships")
    relationships = list(existing) if isinstance(existing, list) else []
    relationships.append({"type": rel_type, "dest": dest})

    annotated = dict(document)
    annotated["metadata"] = merge(metadata, {"relationships": relationships})
    return annotated


def extract_paths(body: Any) -> list[str]:
    """
    Storage locators of a single document (`spec.path`) or of every item of
    a listing (`content[].spec.path`).
    """
    if not isinstance(body, dict):
        raise InvalidPathError("invalid response: expected a JSON object")

    if "content" not in body:
        spec = body.get("spec")
        path = spec.get("path") if isinstance(spec, dict) else None
        if isinstance(path, str) and path:
            return [path]
        raise InvalidPathError("missing spec.path")

    content = body["content"]
    if not isinstance(content, list):
        raise InvalidPathError("invalid content")

    paths = []
    for item in content:
        spec = item.get("spec") if isinstance(item, dict) else None
        path = spec.get("path") if isinstance(spec, dict) else None
        if isinstance(path, str) and path:
            paths.append(path)
    if not paths:
        raise InvalidPathError("no paths in content")
    return paths


# ---------------------------------------------------------------------
# Local filesystem helpers
# ---------------------------------------------------------------------

def choose_local_target(destination: Optional[str], filename: str) -> Path:
    """
    - no destination: ./filename
    - existing directory: dir/filename
    - existing file: that file
    - missing: created as a directory, then dir/filename
    """
    if not destination:
        return Path(filename)
    dst = Path(destination)
    if dst.is_dir():
        return dst / filename
    if dst.exists():
        return dst
    dst.mkdir(parents=True, exist_ok=True)
    return dst / filename


def iter_local_files(root: Path) -> Iterator[tuple[Path, str, int]]:
    """
    Regular files under `root` as (path, slash-separated relative path, size),
    in lexical order.
    """
    def _raise(err: OSError) -> None:
        raise err

    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
        dirnames.sort()
        for filename in sorted(filenames):
            path = Path(dirpath) / filename
            if not path.is_file():
                continue
            rel = path.relative_to(root).as_posix()
            yield path, rel, path.stat().st_size


def local_report(paths: list[Path]) -> list[DownloadInfo]:
    report = []
    for path in paths:
        try:
            st = path.stat()
        except OSError:
            continue
        if path.is_file():
            report.append(DownloadInfo(filename=path.name, size=st.st_size, path=str(path)))
    return report


def _check_cancel(cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise TransferCancelledError("transfer cancelled")


def _require_project(project: Optional[str], resource: str) -> None:
    if resource != PROJECTS_RESOURCE and not project:
        raise InvalidInputError("project is mandatory for non-project resources")


# ---------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------

class TransferService:
    """
    Moves artifact payloads between local disk and the object store while
    keeping the Core document in step.
    """

    def __init__(
        self,
        core: CoreClient,
        store: S3ObjectStore,
        fetcher: Optional[HttpFetcher] = None,
        console: Optional[Console] = None,
        progress_factory: Optional[ProgressFactory] = None,
    ):
        self.core = core
        self.store = store
        self.fetcher = fetcher or HttpFetcher()
        self._console = console if console is not None else Console(stderr=True)
        self._progress_factory = progress_factory or (lambda total: GlobalProgress(total, console=self._console))

    @classmethod
    def from_config(cls, config: Config, console: Optional[Console] = None) -> "TransferService":
        return cls(
            core=CoreClient(config.core),
            store=S3ObjectStore(config=config.s3),
            fetcher=HttpFetcher(timeout=config.core.timeout),
            console=console,
        )

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    def upload(self, request: UploadRequest, cancel: Optional[threading.Event] = None) -> UploadResult:
        if not request.input:
            raise InvalidInputError("missing required input file or directory")
        _require_project(request.project, request.resource)
        source = Path(request.input)
        if not source.exists():
            raise InvalidInputError(f"cannot access input: {source}")

        run_key = self._lookup_run_key(request.project, request.run_id)

        artifact_id = request.id
        if not artifact_id:
            artifact_id = self._create_artifact(request, source)

        url = self.core.build_url(request.project, request.resource, artifact_id)
        artifact = self.core.get(url)
        if not isinstance(artifact, dict):
            raise RemoteError(f"invalid artifact document for {artifact_id}")

        state = document_state(artifact)
        if state != ArtifactState.CREATED.value:
            raise InvalidStateError(f"artifact is not in CREATED state, current state: {state}", state=state)
        parsed = self._storage_path(artifact)

        if run_key:
            artifact = add_relationship(artifact, "produced_by", run_key)

        document = RemoteDocument(self.core, url, artifact)
        document.update("status", {"state": ArtifactState.UPLOADING.value})
        log = logger.bind(artifact_id=artifact_id, path=parsed.raw)
        log.info("Artifact marked as uploading")

        try:
            infos = self._upload_payload(source, parsed, request.verbose, cancel)
        except (TransferError, OSError) as exc:
            error = exc if isinstance(exc, TransferError) else TransferError(f"upload failed: {exc}")
            self._mark_error(document, error)
            log.error("Upload failed", error=str(exc))
            if error is exc:
                raise
            raise error from exc

        result = UploadResult(artifact_id=artifact_id, files=[info.to_dict() for info in infos])
        try:
            document.update("status", {"state": ArtifactState.READY.value, "files": result.files})
        except RemoteError as exc:
            log.warning("Files uploaded but status update failed", error=str(exc))
            raise PartialSuccessError(
                f"upload succeeded but failed to update status of {artifact_id}: {exc}",
                result=result,
                cause=exc,
            ) from exc

        log.info("Upload complete", files=len(result.files))
        return result

    def _lookup_run_key(self, project: str, run_id: Optional[str]) -> Optional[str]:
        if not run_id:
            return None
        url = self.core.build_url(project, RUNS_RESOURCE, run_id)
        try:
            run = self.core.get(url)
        except RemoteError as exc:
            raise RemoteError(f"failed to retrieve run {run_id}: {exc.message}", status_code=exc.status_code) from exc
        key = run.get("key") if isinstance(run, dict) else None
        if not isinstance(key, str) or not key:
            raise RemoteError(f"run key not found in response for run {run_id}")
        return key

    def _create_artifact(self, request: UploadRequest, source: Path) -> str:
        if not request.name:
            raise InvalidInputError("name is required when creating a new artifact")

        artifact_id = uuid.uuid4().hex
        bucket = request.bucket or DEFAULT_BUCKET
        root = f"s3://{bucket}/{request.project}/{request.resource}/{artifact_id}/"
        path = root if source.is_dir() else root + source.name

        entity = {
            "id": artifact_id,
            "project": request.project,
            "kind": request.kind,
            "name": request.name,
            "spec": {"path": path},
            "status": {"state": ArtifactState.CREATED.value},
        }
        self.core.do("POST", self.core.build_url(request.project, request.resource), entity)
        logger.info("Artifact created", artifact_id=artifact_id, name=request.name, path=path)
        return artifact_id

    @staticmethod
    def _storage_path(artifact: dict) -> ParsedPath:
        spec = artifact.get("spec")
        raw = spec.get("path") if isinstance(spec, dict) else None
        parsed = parse_path(raw)
        if parsed.scheme != S3_SCHEME:
            raise InvalidPathError(f"only s3 scheme is supported for upload, got {parsed.scheme!r}")
        return parsed

    def _mark_error(self, document: RemoteDocument, error: TransferError) -> None:
        try:
            document.update("status", {"state": ArtifactState.ERROR.value})
        except RemoteError as exc:
            logger.warning("Could not mark artifact as ERROR", url=document.url, error=str(exc))
            error.state_update_error = exc

    def _upload_payload(
        self,
        source: Path,
        parsed: ParsedPath,
        verbose: bool,
        cancel: Optional[threading.Event],
    ) -> list[FileInfo]:
        bucket = parsed.bucket

        if not source.is_dir():
            key = join_key(parsed.path, source.name) if parsed.is_dir else parsed.path
            logger.info("Preparing upload", source=str(source), target=f"s3://{bucket}/{key}")
            _check_cancel(cancel)
            if verbose:
                return [self.store.put_file(bucket, key, source, hook=FileProgressHook(self._console))]
            progress = self._progress_factory(source.stat().st_size)
            try:
                info = self.store.put_file(bucket, key, source, hook=AggregatingHook(progress))
            finally:
                progress.done()
            return [info]

        try:
            entries = list(iter_local_files(source))
        except OSError as exc:
            raise TransferError(f"failed to enumerate local directory {source}: {exc}") from exc

        total_bytes = sum(size for _, _, size in entries)
        logger.info(
            "Preparing directory upload",
            source=str(source),
            target=f"s3://{bucket}/{parsed.path}",
            files=len(entries),
            bytes=total_bytes,
        )

        progress = None if verbose else self._progress_factory(total_bytes)
        infos = []
        try:
            for idx, (path, rel, _) in enumerate(entries, start=1):
                _check_cancel(cancel)
                key = join_key(parsed.path, rel)
                hook: ProgressHook
                if verbose:
                    self._console.print(f"   [{idx}/{len(entries)}] {rel} -> s3://{bucket}/{key}", markup=False, highlight=False)
                    hook = FileProgressHook(self._console, indent="      ")
                else:
                    hook = AggregatingHook(progress)
                try:
                    infos.append(self.store.put_file(bucket, key, path, relative=rel, hook=hook))
                except TransferError as exc:
                    raise TransferError(f"upload error ({path}): {exc}", key=key) from exc
        finally:
            if progress is not None:
                progress.done()
        return infos

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    def download(self, request: DownloadRequest, cancel: Optional[threading.Event] = None) -> list[DownloadInfo]:
        _require_project(request.project, request.resource)
        if not request.id and not request.name:
            raise InvalidInputError("you must specify id or name")

        params = {} if request.id else {"name": request.name, "versions": "latest"}
        body = self.core.get(self.core.build_url(request.project, request.resource, request.id, params))

        report: list[DownloadInfo] = []
        for raw in extract_paths(body):
            _check_cancel(cancel)
            try:
                report.extend(self._download_path(raw, request, cancel))
            except TransferCancelledError:
                raise
            except (TransferError, InvalidPathError, OSError) as exc:
                logger.warning("Skipping path", path=raw, error=str(exc))
        return report

    def _download_path(
        self,
        raw: str,
        request: DownloadRequest,
        cancel: Optional[threading.Event],
    ) -> list[DownloadInfo]:
        parsed = parse_path(raw)
        if parsed.scheme != S3_SCHEME and parsed.scheme not in HTTP_SCHEMES:
            logger.warning("Unsupported scheme, skipping", path=raw, scheme=parsed.scheme)
            return []

        target = choose_local_target(request.destination, parsed.filename)

        if parsed.scheme == S3_SCHEME and parsed.is_dir:
            return self._download_dir(parsed, target, request.verbose, cancel)

        logger.info("Preparing download", source=raw, target=str(target))
        if request.verbose:
            hook: ProgressHook = FileProgressHook(self._console, action="downloading")
            progress = None
        else:
            progress = self._progress_factory(None)
            hook = AggregatingHook(progress, adopt_total=True)

        try:
            if parsed.scheme == S3_SCHEME:
                self.store.download_file(parsed.bucket, parsed.path, target, hook=hook)
            else:
                self.fetcher.download(parsed.raw, target, hook=hook)
        finally:
            if progress is not None:
                progress.done()
        return local_report([target])

    def _download_dir(
        self,
        parsed: ParsedPath,
        target: Path,
        verbose: bool,
        cancel: Optional[threading.Event],
    ) -> list[DownloadInfo]:
        bucket, prefix = parsed.bucket, parsed.path
        local_root = target.parent

        try:
            listing = self.store.list_all(bucket, prefix)
            total_files = len(listing)
            total_bytes: Optional[int] = sum(entry.size for entry in listing)
        except TransferError as exc:
            logger.warning("Listing failed, proceeding without totals", path=parsed.raw, error=str(exc))
            total_files, total_bytes = 0, None

        logger.info(
            "Preparing directory download",
            source=parsed.raw,
            target=str(local_root),
            files=total_files,
            bytes=total_bytes,
        )

        progress = None if verbose else self._progress_factory(total_bytes)
        written: list[Path] = []
        try:
            for idx, entry in enumerate(self.store.iter_objects(bucket, prefix), start=1):
                _check_cancel(cancel)
                try:
                    local = safe_local_path(local_root, entry.name)
                except InvalidPathError as exc:
                    raise TransferError(str(exc), key=entry.key) from exc
                try:
                    local.parent.mkdir(parents=True, exist_ok=True)
                except OSError as exc:
                    raise TransferError(f"failed to create local directory: {exc}", key=entry.key) from exc

                hook: ProgressHook
                if verbose:
                    counter = f"{idx}/{total_files}" if total_files else str(idx)
                    self._console.print(f"   [{counter}] {entry.name}", markup=False, highlight=False)
                    hook = FileProgressHook(self._console, action="downloading", indent="      ")
                else:
                    hook = AggregatingHook(progress)
                self.store.download_file(bucket, entry.key, local, hook=hook)
                written.append(local)
        finally:
            if progress is not None:
                progress.done()

        return local_report(written)
