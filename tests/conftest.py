import io
import threading

import pytest
from rich.console import Console

from dhcore.adapters.s3_store import S3ObjectStore
from dhcore.kernel.progress import GlobalProgress
from dhcore.kernel.transfer import TransferService
from tests.kernel.mocks import MockCore, MockS3Client

PROJECT = "proj"


# --- Fakes ---

@pytest.fixture
def core():
    mock = MockCore()
    yield mock
    mock.client.close()


@pytest.fixture
def s3_client():
    return MockS3Client()


@pytest.fixture
def store(s3_client):
    return S3ObjectStore(client=s3_client)


@pytest.fixture
def console():
    """A rich console writing to memory instead of the terminal."""
    return Console(file=io.StringIO(), force_terminal=False, width=200)


@pytest.fixture
def progress_bars():
    """Every GlobalProgress a service creates, in creation order."""
    return []


@pytest.fixture
def service(core, store, console, progress_bars):
    def factory(total):
        progress = GlobalProgress(total, console=console)
        progress_bars.append(progress)
        return progress

    return TransferService(core.client, store, console=console, progress_factory=factory)


@pytest.fixture
def cancel():
    return threading.Event()


# --- Local data ---

@pytest.fixture
def demo_dir(tmp_path):
    """
    Three files, 5000 bytes in total:
    demo/a.txt (1000), demo/sub/b.txt (2000), demo/c.bin (2000)
    """
    root = tmp_path / "demo"
    (root / "sub").mkdir(parents=True)
    (root / "a.txt").write_bytes(b"a" * 1000)
    (root / "sub" / "b.txt").write_bytes(b"b" * 2000)
    (root / "c.bin").write_bytes(bytes(range(250)) * 8)
    return root


@pytest.fixture
def created_artifact(core):
    """An artifact document in CREATED state pointing at an s3 directory."""
    return core.add(PROJECT, "artifacts", {
        "id": "art-1",
        "project": PROJECT,
        "kind": "artifact",
        "name": "demo",
        "spec": {"path": "s3://datalake/proj/artifacts/art-1/"},
        "metadata": {"labels": ["x"]},
        "status": {"state": "CREATED"},
    })
