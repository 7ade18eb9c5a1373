"""Build writer.

Materializes rendered documents under ``<root>/<namespace>/`` and keeps a
per-store pointer to the live build version.
"""

import os
import shutil
import tempfile
import threading
from pathlib import Path, PurePosixPath

from buildcart.config import settings
from buildcart.core.exceptions import WriteError
from buildcart.utils.logging import get_logger

ASSETS_DIR = Path(__file__).resolve().parents[1] / "assets"
PLACEHOLDER_ASSET = ASSETS_DIR / "placeholder.svg"

# Name of the pointer file naming a store's live build version
CURRENT_POINTER = "CURRENT"


class BuildWriter:
    """Writes build artifacts to durable storage.

    Every file is written to a temporary sibling and moved into place with
    ``os.replace``, so readers see either the old or the new file, never a
    partial one. There is no atomicity across files of a build.
    """

    def __init__(
        self,
        root: Path | str | None = None,
        static_assets: list[Path] | None = None,
    ):
        self.root = Path(root or settings.storage_root).resolve()
        self.static_assets = (
            static_assets if static_assets is not None else [PLACEHOLDER_ASSET]
        )
        self.logger = get_logger("build_writer")

    def build_dir(self, store_slug: str, version: str) -> Path:
        """Directory holding one version of a store's build."""
        return self._resolve(f"{store_slug}/{version}")

    def write_tree(
        self,
        namespace: str,
        files: dict[str, bytes],
        cancelled: threading.Event | None = None,
    ) -> Path:
        """Write a mapping of relative paths to content under a namespace.

        Args:
            namespace: Relative destination, e.g. ``"acme/v1700000000000"``
            files: Relative file path -> content
            cancelled: Checked before every file; once set, the partly
                written namespace is removed and WriteError raised

        Returns:
            Root path of the written tree

        Raises:
            WriteError: On invalid paths or any I/O failure
        """
        root = self._resolve(namespace)

        for relative_path, content in files.items():
            self._check_cancelled(root, cancelled)
            target = self._resolve_within(root, relative_path)
            self._atomic_write(target, content)

        for asset in self.static_assets:
            self._check_cancelled(root, cancelled)
            self.copy_static_asset(asset, f"{namespace}/assets")

        self.logger.info(
            "build_writer.written",
            namespace=namespace,
            file_count=len(files),
            path=str(root),
        )
        return root

    def copy_static_asset(self, source: Path | str, dest_namespace: str) -> Path:
        """Copy a shared static asset into a namespace."""
        source = Path(source)
        dest_dir = self._resolve(dest_namespace)
        target = dest_dir / source.name

        try:
            dest_dir.mkdir(parents=True, exist_ok=True)
            self._atomic_write(target, source.read_bytes())
        except OSError as e:
            raise WriteError(f"cannot copy asset {source.name}: {e}", str(target)) from e

        return target

    def build_exists(self, store_slug: str, version: str) -> bool:
        """Check whether a version's build is still present on storage."""
        return (self.build_dir(store_slug, version) / "index.html").is_file()

    def activate(self, store_slug: str, version: str) -> Path:
        """Point the store's live build at a version."""
        pointer = self._resolve(store_slug) / CURRENT_POINTER
        self._atomic_write(pointer, f"{version}\n".encode("utf-8"))

        self.logger.info("build_writer.activated", store=store_slug, version=version)
        return pointer

    def current_version(self, store_slug: str) -> str | None:
        """Return the version the store's live pointer names, if any."""
        pointer = self._resolve(store_slug) / CURRENT_POINTER
        try:
            return pointer.read_text(encoding="utf-8").strip() or None
        except FileNotFoundError:
            return None
        except OSError as e:
            raise WriteError(f"cannot read build pointer: {e}", str(pointer)) from e

    def _check_cancelled(self, root: Path, cancelled: threading.Event | None) -> None:
        if cancelled is None or not cancelled.is_set():
            return

        try:
            shutil.rmtree(root)
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.warning("build_writer.discard_failed", path=str(root), error=str(e))

        self.logger.warning("build_writer.cancelled", path=str(root))
        raise WriteError("build write cancelled", str(root))

    def _resolve(self, namespace: str) -> Path:
        return self._resolve_within(self.root, namespace)

    def _resolve_within(self, base: Path, relative_path: str) -> Path:
        """Join a relative POSIX path to base, refusing escapes."""
        parts = PurePosixPath(relative_path).parts
        if not parts or relative_path.startswith("/") or ".." in parts:
            raise WriteError(f"invalid output path '{relative_path}'", str(base))
        return base.joinpath(*parts)

    def _atomic_write(self, target: Path, content: bytes) -> None:
        tmp_name = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=target.parent,
                prefix=f".{target.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(content)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, target)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise WriteError(str(e), str(target)) from e
