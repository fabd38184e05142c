"""
Pytest configuration and shared fixtures.

This file is automatically loaded by pytest and makes fixtures
available to all test modules.
"""

import io
import shutil
import sys
import zipfile
from pathlib import Path

import pytest

# Add src/ to Python path so tests run without installing the package
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from annotator_host.api.storage import AnnotatorStorage  # noqa: E402
from annotator_host.config import HostConfig  # noqa: E402
from annotator_host.plugins.plugin_loader import AnnotatorCatalog  # noqa: E402

SAMPLE_ANNOTATORS = project_root / "plugins"

ECHO_ANNOTATOR = '''
from annotator_host.models import Layer, Schema
from annotator_host.plugins import (
    BaseAnnotator, InvalidConfiguration, RequestException, endpoint,
)


class EchoAnnotator(BaseAnnotator):
    annotator_id = {annotator_id!r}
    version = {version!r}
    output_layers = ["output"]

    def __init__(self):
        super().__init__()
        schema = Schema(word_layer_id="word")
        schema.add_layer(Layer(id="word", alignment=2))
        schema.add_layer(Layer(id="output", parent_id="word", type="string"))
        self.set_schema(schema)

    def set_task_parameters(self, parameters):
        if parameters == "invalid":
            raise InvalidConfiguration("Parameters rejected")
        super().set_task_parameters(parameters)

    @endpoint
    def echo(self, message="", body=None):
        return {{"message": message, "body": body}}

    @endpoint
    def fail(self):
        raise RequestException("Deliberate failure", 418)

    @endpoint
    def failQuietly(self):
        raise RequestException(None, 409)


def get_plugin():
    return EchoAnnotator()
'''


def install_annotator(
    annotator_dir: Path,
    annotator_id: str = "echo",
    version: str | None = "1.0",
    webapps: tuple[str, ...] = ("config", "task", "ext"),
) -> Path:
    """
    Write an annotator module into an annotator directory.

    Calling it again with a different version simulates an upgrade.
    """
    module_dir = annotator_dir / annotator_id
    module_dir.mkdir(parents=True, exist_ok=True)
    (module_dir / "plugin.py").write_text(
        ECHO_ANNOTATOR.format(annotator_id=annotator_id, version=version), encoding="utf-8"
    )
    for webapp in webapps:
        (module_dir / webapp).mkdir(exist_ok=True)
        (module_dir / webapp / "index.html").write_text(
            f"<html><body>{annotator_id} {webapp}</body></html>", encoding="utf-8"
        )
        (module_dir / webapp / "style.css").write_text("body { color: black; }", encoding="utf-8")
    return module_dir


@pytest.fixture
def annotator_dir(tmp_path: Path) -> Path:
    """Empty annotator directory."""
    directory = tmp_path / "annotators"
    directory.mkdir()
    return directory


@pytest.fixture
def catalog(annotator_dir: Path) -> AnnotatorCatalog:
    return AnnotatorCatalog(annotator_dir)


@pytest.fixture
def storage(tmp_path: Path) -> AnnotatorStorage:
    """Local JSON storage in a temporary directory."""
    return AnnotatorStorage(local_dir=tmp_path / "data")


@pytest.fixture
def host_config(annotator_dir: Path, tmp_path: Path) -> HostConfig:
    """Configuration for a test host, with API key auth and no rate limiting."""
    return HostConfig(
        annotator_dir=str(annotator_dir),
        disabled_annotators=[],
        storage_dir=str(tmp_path / "data"),
        google_cloud_project="",
        api_key="test-api-key",
        api_key_roles=["admin", "edit"],
        jwt_secret="test-jwt-secret",
        allow_anonymous=False,
        rate_limit_enabled=False,
    )


@pytest.fixture
def syllabifier_dir(annotator_dir: Path) -> Path:
    """The sample syllabifier annotator, installed in the test annotator directory."""
    return Path(shutil.copytree(SAMPLE_ANNOTATORS / "syllabifier", annotator_dir / "syllabifier"))


class FakeTimer:
    """Timer that only fires when told to."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function()


class FakeTimerFactory:
    """Creates FakeTimers and remembers them."""

    def __init__(self):
        self.created: list[FakeTimer] = []

    def __call__(self, interval, function):
        timer = FakeTimer(interval, function)
        self.created.append(timer)
        return timer


class InlineThread:
    """Thread that runs its target as soon as it's started."""

    def __init__(self, target=None, args=(), name=None, daemon=None):
        self.target = target
        self.args = args
        self.name = name
        self.daemon = daemon

    def start(self):
        self.target(*self.args)


@pytest.fixture
def timers() -> FakeTimerFactory:
    return FakeTimerFactory()


@pytest.fixture
def inline_threads():
    return InlineThread


@pytest.fixture
def install(annotator_dir: Path):
    """Install (or upgrade) annotators in the test annotator directory."""
    def _install(annotator_id="echo", version="1.0", webapps=("config", "task", "ext")):
        return install_annotator(annotator_dir, annotator_id, version, webapps)

    return _install


@pytest.fixture
def annotator_zip(tmp_path: Path):
    """Build the zip an administrator would upload to install an annotator."""
    def _zip(annotator_id="echo", version="1.0", webapps=("config", "task", "ext")) -> io.BytesIO:
        build_dir = tmp_path / "build" / version
        module_dir = install_annotator(build_dir, annotator_id, version, webapps)
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            for path in sorted(module_dir.rglob("*")):
                if path.is_file():
                    archive.write(path, path.relative_to(build_dir).as_posix())
        buffer.seek(0)
        return buffer

    return _zip
