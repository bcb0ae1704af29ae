import time
from pathlib import Path
from typing import Optional

import requests

from dhcore.internal.constants import DOWNLOAD_CHUNK_SIZE, PARTIAL_SUFFIX
from dhcore.internal.logging import get_logger
from dhcore.kernel.contracts import ProgressHook
from dhcore.kernel.errors import TransferError

logger = get_logger(__name__)


class HttpFetcher:
    """
    Downloads plain http(s) locators that some artifacts point at.
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = 60):
        self._session = session or requests.Session()
        self.timeout = timeout

    def download(self, url: str, target_path: Path, hook: Optional[ProgressHook] = None) -> int:
        target_path = Path(target_path)
        temp_path = target_path.with_name(target_path.name + PARTIAL_SUFFIX)
        written = 0
        start = time.monotonic()
        try:
            with self._session.get(url, stream=True, timeout=self.timeout) as r:
                r.raise_for_status()
                length = r.headers.get("Content-Length")
                total = int(length) if length and length.isdigit() else None
                if hook is not None and total is not None:
                    hook.on_start(url, total)

                with open(temp_path, "wb") as f:
                    for chunk in r.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if not chunk:
                            continue
                        f.write(chunk)
                        written += len(chunk)
                        if hook is not None:
                            hook.on_progress(url, written, total)

            temp_path.replace(target_path)
        except requests.exceptions.RequestException as e:
            raise TransferError(f"download of {url} failed: {e}", key=url) from e
        except OSError as e:
            raise TransferError(f"failed to write {target_path}: {e}", key=url) from e
        finally:
            if temp_path.exists():
                temp_path.unlink()

        if hook is not None:
            hook.on_done(url, total if total is not None else written, time.monotonic() - start)
        logger.debug("HTTP download complete", url=url, path=str(target_path), size=written)
        return written
