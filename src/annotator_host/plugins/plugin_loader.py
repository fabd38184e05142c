"""
Annotator module discovery, loading and installation.

Annotator modules are installed by copying their directory into the annotator
directory, or by uploading a zip of it through the administration API - no
host code changes needed.

Directory structure expected:
```
plugins/
├── syllabifier/
│   ├── plugin.py           (defines get_plugin() function)
│   ├── info.html           (optional description)
│   ├── config/index.html   (optional 'config' web-app)
│   ├── task/index.html     (optional 'task' web-app)
│   └── ext/index.html      (optional 'ext' web-app)
└── other-annotator/
    └── plugin.py
```

Example plugin.py:
```python
from annotator_host.plugins import BaseAnnotator

class Syllabifier(BaseAnnotator):
    annotator_id = "syllabifier"
    version = "1.0"

def get_plugin():
    return Syllabifier()
```
"""

import hashlib
import importlib.util
import logging
import re
import secrets
import shutil
import sys
import threading
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from types import ModuleType
from typing import Any, BinaryIO, NamedTuple

from annotator_host.errors import AnnotatorHostError, BadRequest, InternalError, NotFound
from annotator_host.models.descriptor import PluginDescriptor

logger = logging.getLogger(__name__)

PLUGIN_FILE = "plugin.py"
INFO_FILE = "info.html"
MODULE_PREFIX = "annotator_host_plugins"
UPLOADS_DIR = ".uploads"
UPLOAD_ID = re.compile(r"[0-9a-f]{16}")


class LoadedModule(NamedTuple):
    """An imported plugin.py, and the version of the annotator it provides."""

    digest: str
    module: ModuleType
    version: str | None


@dataclass
class UploadedAnnotator:
    """An uploaded annotator module awaiting confirmation."""

    upload_id: str
    annotator_id: str
    version: str | None
    installed_version: str | None
    has_config_webapp: bool
    has_task_webapp: bool
    has_ext_webapp: bool
    info: str

    def to_dict(self) -> dict[str, Any]:
        data = {
            "upload": self.upload_id,
            "annotatorId": self.annotator_id,
            "version": self.version,
            "hasConfigWebapp": self.has_config_webapp,
            "hasTaskWebapp": self.has_task_webapp,
            "hasExtWebapp": self.has_ext_webapp,
            "info": self.info,
        }
        if self.installed_version is not None:
            data["installedVersion"] = self.installed_version
        return data


def _is_valid_id(annotator_id: str) -> bool:
    return bool(annotator_id) and not annotator_id.startswith(".") \
        and "/" not in annotator_id and "\\" not in annotator_id


def _exec_module(module_name: str, plugin_file: Path) -> ModuleType:
    spec = importlib.util.spec_from_file_location(module_name, plugin_file)
    if spec is None or spec.loader is None:
        raise ImportError(f"Invalid module spec for {plugin_file}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
        if not hasattr(module, "get_plugin"):
            raise ImportError(f"{plugin_file.parent.name}/{PLUGIN_FILE} must define a get_plugin() function")
    except BaseException:
        sys.modules.pop(module_name, None)
        raise
    return module


def _webapp_flags(module_dir: Path) -> dict[str, bool]:
    return {
        "has_config_webapp": (module_dir / "config" / "index.html").is_file(),
        "has_task_webapp": (module_dir / "task" / "index.html").is_file(),
        "has_ext_webapp": (module_dir / "ext" / "index.html").is_file(),
    }


def _read_info(module_dir: Path) -> str:
    info_file = module_dir / INFO_FILE
    return info_file.read_text(encoding="utf-8") if info_file.is_file() else ""


class AnnotatorCatalog:
    """
    Supplies descriptors for the annotator modules installed in a directory.

    Each call to get_descriptor() reflects what's currently installed; a
    module is only re-imported (and its version only re-read) when its
    plugin.py has changed.
    """

    def __init__(self, annotator_dir: str | Path, disabled: list[str] | None = None):
        """
        Initialize the catalog.

        Args:
            annotator_dir: Directory containing one sub-directory per annotator
            disabled: Annotator IDs to treat as not installed
        """
        self.annotator_dir = Path(annotator_dir)
        self.disabled = {d.lower() for d in (disabled or [])}
        self._lock = threading.Lock()
        self._modules: dict[str, LoadedModule] = {}

    def _is_disabled(self, annotator_id: str) -> bool:
        return annotator_id.lower() in self.disabled

    def _module_dir(self, annotator_id: str) -> Path | None:
        if not _is_valid_id(annotator_id):
            return None
        module_dir = self.annotator_dir / annotator_id
        if not (module_dir / PLUGIN_FILE).is_file():
            return None
        return module_dir

    def _load_module(self, annotator_id: str, module_dir: Path) -> LoadedModule:
        plugin_file = module_dir / PLUGIN_FILE
        digest = hashlib.sha256(plugin_file.read_bytes()).hexdigest()

        with self._lock:
            cached = self._modules.get(annotator_id)
            if cached and cached.digest == digest:
                return cached

            module_name = f"{MODULE_PREFIX}.{annotator_id}"
            module = _exec_module(module_name, plugin_file)

            # instantiate once to find out what's installed
            try:
                annotator = module.get_plugin()
                if annotator.annotator_id != annotator_id:
                    raise ImportError(
                        f"Annotator in {annotator_id}/ reports ID '{annotator.annotator_id}'"
                    )
            except BaseException:
                sys.modules.pop(module_name, None)
                raise

            loaded = LoadedModule(digest, module, annotator.version)
            self._modules[annotator_id] = loaded
            logger.info(
                "Loaded annotator module %s v%s from %s", annotator_id, loaded.version, module_dir
            )
            return loaded

    @staticmethod
    def _resource_resolver(module_dir: Path):
        root = module_dir.resolve()

        def open_resource(path: str) -> BinaryIO | None:
            relative = Path(path.lstrip("/"))
            if relative.is_absolute() or ".." in relative.parts:
                return None
            resource = (root / relative).resolve()
            if root not in resource.parents or not resource.is_file():
                return None
            return resource.open("rb")

        return open_resource

    def get_descriptor(self, annotator_id: str) -> PluginDescriptor | None:
        """
        Get the descriptor of an installed annotator.

        Args:
            annotator_id: Annotator identifier

        Returns:
            Descriptor, or None if the annotator isn't installed (or can't be loaded)
        """
        if self._is_disabled(annotator_id):
            return None
        module_dir = self._module_dir(annotator_id)
        if module_dir is None:
            return None

        try:
            loaded = self._load_module(annotator_id, module_dir)
        except Exception:
            logger.exception("Could not load annotator %s", annotator_id)
            return None

        return PluginDescriptor(
            plugin_id=annotator_id,
            version=loaded.version,
            factory=loaded.module.get_plugin,
            resource_resolver=self._resource_resolver(module_dir),
            info=_read_info(module_dir),
            **_webapp_flags(module_dir),
        )

    def list_descriptors(self) -> list[PluginDescriptor]:
        """Descriptors of all installed annotators, sorted by ID."""
        if not self.annotator_dir.is_dir():
            logger.warning("No annotator directory found at %s", self.annotator_dir)
            return []

        descriptors = []
        for module_dir in sorted(self.annotator_dir.iterdir()):
            if not module_dir.is_dir() or module_dir.name.startswith("."):
                continue
            descriptor = self.get_descriptor(module_dir.name)
            if descriptor is not None:
                descriptors.append(descriptor)
        return descriptors

    def uninstall(self, annotator_id: str) -> None:
        """
        Uninstall an annotator.

        Gives the annotator a chance to clean up, then deletes its directory.

        Raises:
            NotFound: If the annotator isn't installed
        """
        descriptor = self.get_descriptor(annotator_id)
        if descriptor is None:
            raise NotFound(f"Invalid ID: {annotator_id}")

        descriptor.create_instance().uninstall()

        with self._lock:
            shutil.rmtree(self.annotator_dir / annotator_id)
            self._modules.pop(annotator_id, None)
            sys.modules.pop(f"{MODULE_PREFIX}.{annotator_id}", None)
        logger.info("Uninstalled annotator %s", annotator_id)

    # =========================================================================
    # INSTALLATION
    # =========================================================================

    @property
    def uploads_dir(self) -> Path:
        return self.annotator_dir / UPLOADS_DIR

    def receive(self, filename: str, stream: BinaryIO) -> UploadedAnnotator:
        """
        Receive an uploaded module for installation.

        The upload is unpacked and inspected, but nothing is installed until
        install() is called with the returned upload ID.

        Args:
            filename: Name of the uploaded file, for messages
            stream: Zip of the module directory (or of its contents)

        Returns:
            What was uploaded, and the version currently installed, if any

        Raises:
            BadRequest: If the upload isn't a zip containing an annotator module
        """
        upload_id = secrets.token_hex(8)
        upload_dir = self.uploads_dir / upload_id
        upload_dir.mkdir(parents=True)
        try:
            self._extract(filename, stream, upload_dir)
            module_dir, annotator = self._inspect_upload(filename, upload_id, upload_dir)
        except BaseException:
            shutil.rmtree(upload_dir, ignore_errors=True)
            raise

        installed = self.get_descriptor(annotator.annotator_id)
        logger.info(
            "Received annotator %s v%s (%s)", annotator.annotator_id, annotator.version, filename
        )
        return UploadedAnnotator(
            upload_id=upload_id,
            annotator_id=annotator.annotator_id,
            version=annotator.version,
            installed_version=installed.version if installed else None,
            info=_read_info(module_dir),
            **_webapp_flags(module_dir),
        )

    def install(self, upload_id: str) -> PluginDescriptor:
        """
        Install a received module, replacing any installed version.

        Live instances of the previous version are replaced by the registries
        the next time they're used.

        Raises:
            NotFound: If there's no such upload
            BadRequest: If the upload no longer contains an annotator
            InternalError: If the installed module can't be loaded
        """
        upload_dir = self._upload_dir(upload_id)
        try:
            module_dir, annotator = self._inspect_upload(upload_id, upload_id, upload_dir)
            annotator_id = annotator.annotator_id
            target = self.annotator_dir / annotator_id
            with self._lock:
                if target.exists():
                    shutil.rmtree(target)
                shutil.move(str(module_dir), str(target))
                self._modules.pop(annotator_id, None)
                sys.modules.pop(f"{MODULE_PREFIX}.{annotator_id}", None)
        finally:
            shutil.rmtree(upload_dir, ignore_errors=True)

        descriptor = self.get_descriptor(annotator_id)
        if descriptor is None:
            raise InternalError(f"Annotator {annotator_id} could not be loaded once installed")
        logger.info("Installed annotator %s v%s", annotator_id, descriptor.version)
        return descriptor

    def cancel(self, upload_id: str) -> None:
        """
        Discard a received module.

        Raises:
            NotFound: If there's no such upload
        """
        shutil.rmtree(self._upload_dir(upload_id))
        logger.info("Installation of upload %s cancelled", upload_id)

    def _upload_dir(self, upload_id: str) -> Path:
        upload_dir = self.uploads_dir / upload_id
        if not UPLOAD_ID.fullmatch(upload_id) or not upload_dir.is_dir():
            raise NotFound(f"No such upload: {upload_id}")
        return upload_dir

    @staticmethod
    def _extract(filename: str, stream: BinaryIO, destination: Path) -> None:
        try:
            with zipfile.ZipFile(stream) as archive:
                for member in archive.infolist():
                    path = PurePosixPath(member.filename)
                    if path.is_absolute() or ".." in path.parts:
                        raise BadRequest(f"Invalid path in {filename}: {member.filename}")
                archive.extractall(destination)
        except zipfile.BadZipFile as e:
            raise BadRequest(f"{filename} is not a zip file") from e

    @staticmethod
    def _find_module_dir(upload_dir: Path) -> Path | None:
        if (upload_dir / PLUGIN_FILE).is_file():
            return upload_dir
        candidates = [
            d for d in upload_dir.iterdir() if d.is_dir() and (d / PLUGIN_FILE).is_file()
        ]
        return candidates[0] if len(candidates) == 1 else None

    def _inspect_upload(self, filename: str, upload_id: str, upload_dir: Path) -> tuple[Path, Any]:
        module_dir = self._find_module_dir(upload_dir)
        if module_dir is None:
            raise BadRequest(f"No {PLUGIN_FILE} found in {filename}")

        module_name = f"{MODULE_PREFIX}._upload_{upload_id}"
        try:
            annotator = _exec_module(module_name, module_dir / PLUGIN_FILE).get_plugin()
        except AnnotatorHostError:
            raise
        except Exception as e:
            logger.warning("No annotator found in %s: %s", filename, e)
            raise BadRequest(f"No annotator found in {filename}: {e}") from e
        finally:
            sys.modules.pop(module_name, None)

        if not _is_valid_id(annotator.annotator_id or ""):
            raise BadRequest(f"Invalid annotator ID in {filename}: {annotator.annotator_id}")
        if self._is_disabled(annotator.annotator_id):
            raise BadRequest(f"Annotator {annotator.annotator_id} is disabled")
        return module_dir, annotator
