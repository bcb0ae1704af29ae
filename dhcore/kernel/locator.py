"""
Parsing of the storage locators the Core API returns in `spec.path`,
e.g. `s3://datalake/proj/artifacts/<id>/` or `https://host/file.csv`.
"""
import posixpath
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlsplit

from dhcore.kernel.errors import InvalidPathError


@dataclass(frozen=True)
class ParsedPath:
    raw: str
    scheme: str
    host: str  # bucket for s3, host[:port] otherwise
    path: str  # no leading "/", trailing "/" kept for directories
    filename: str  # last non-empty segment

    @property
    def is_dir(self) -> bool:
        return self.path.endswith("/")

    @property
    def bucket(self) -> str:
        return self.host


def parse_path(raw: str) -> ParsedPath:
    if not raw or not isinstance(raw, str):
        raise InvalidPathError("empty storage path")

    try:
        parts = urlsplit(raw)
    except ValueError as exc:
        raise InvalidPathError(f"unparseable storage path {raw!r}: {exc}") from exc

    if not parts.scheme or "://" not in raw:
        raise InvalidPathError(f"storage path {raw!r} has no scheme")
    if not parts.netloc:
        raise InvalidPathError(f"storage path {raw!r} has no host")

    path = parts.path.lstrip("/")
    return ParsedPath(
        raw=raw,
        scheme=parts.scheme.lower(),
        host=parts.netloc,
        path=path,
        filename=posixpath.basename(path.rstrip("/")),
    )


def join_key(prefix: str, relative: str) -> str:
    """
    Object key for `relative` (OS or slash separated) under `prefix`.
    Raises InvalidPathError if `relative` would leave the prefix.
    """
    rel = relative.replace("\\", "/")
    segments = [s for s in rel.split("/") if s not in ("", ".")]
    if rel.startswith("/") or ".." in segments or not segments:
        raise InvalidPathError(f"relative key {relative!r} escapes {prefix!r}")
    if not prefix:
        return "/".join(segments)
    return prefix.rstrip("/") + "/" + "/".join(segments)


def safe_local_path(root: Path, relative: str) -> Path:
    """
    `root / relative`, refusing anything that resolves outside `root`.
    """
    root = Path(root)
    target = (root / relative).resolve()
    base = root.resolve()
    if base not in target.parents:
        raise InvalidPathError(f"{relative!r} escapes local root {str(root)!r}")
    return root / relative
