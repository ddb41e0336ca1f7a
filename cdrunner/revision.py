"""
Application revision archive assembly.
"""

import os
import shutil
import time
import zipfile
from pathlib import Path
from typing import Callable, List, Optional
import logging

from .constants import APPSPEC_YML
from .errors import ConfigurationError, PackagingFailure
from .mappings import PathMappings, get_ready_revision, parse_revision_paths

logger = logging.getLogger(__name__)

BUFFER_SIZE = 64 * 1024


class ApplicationRevision:
    """
    Builds the application revision archive from the files selected by the
    revision path rules, or locates a ready archive named by them.
    """

    def __init__(self, name: str, paths: str, base_dir, temp_dir, custom_appspec: Optional[str] = None):
        self.name = name
        self.paths = paths
        self.base_dir = Path(base_dir)
        self.temp_dir = Path(temp_dir)
        self.custom_appspec = custom_appspec
        self._logger: Optional[Callable[[str], None]] = None

    def with_logger(self, log: Optional[Callable[[str], None]]) -> "ApplicationRevision":
        self._logger = log
        return self

    def _log(self, message: str) -> None:
        logger.info(message)
        if self._logger is not None:
            self._logger(message)

    def get_archive(self) -> Path:
        """
        Return the archive to upload.

        Returns:
            The ready revision resolved against the base directory, or the
            freshly built zip archive in the temp directory

        Raises:
            ConfigurationError: If no files match or there is no appspec.yml
            PackagingFailure: If reading a file or writing the archive fails
        """
        ready = get_ready_revision(self.paths)
        if ready is not None:
            return self.base_dir / ready

        mappings = PathMappings(self.base_dir, parse_revision_paths(self.paths))
        files = mappings.collect_files()
        if not files:
            raise ConfigurationError("No application revision files found")

        custom = self._custom_appspec_file()
        files = self._patch_appspec(files, mappings, custom)

        dest = self.temp_dir / (self.name if self.name.endswith(".zip") else self.name + ".zip")
        return self._zip_files(files, mappings, custom, dest)

    def _custom_appspec_file(self) -> Optional[Path]:
        value = self.custom_appspec
        if not value or not value.strip():
            return None

        if value.endswith(APPSPEC_YML):
            path = Path(value)
            return path if path.is_absolute() else self.base_dir / path

        path = self.temp_dir / APPSPEC_YML
        if not path.exists():
            try:
                self.temp_dir.mkdir(parents=True, exist_ok=True)
                path.write_text(value, encoding="utf-8")
            except OSError as e:
                raise PackagingFailure(f"Failed to write custom {APPSPEC_YML} {path}") from e
        return path

    def _patch_appspec(self, files: List[Path], mappings: PathMappings, custom: Optional[Path]) -> List[Path]:
        appspec = next((f for f in files if mappings.map_path(f) == APPSPEC_YML), None)

        if custom is None:
            if appspec is None:
                raise ConfigurationError(
                    f"No {APPSPEC_YML} file found among application revision files "
                    "and no custom AppSpec file provided"
                )
            return files

        if appspec is None:
            self._log(f"Will use custom AppSpec file {custom}")
        else:
            self._log(f"Will replace existing AppSpec file {appspec} with custom {custom}")

        custom_abs = os.path.abspath(custom)
        patched = [f for f in files if f != appspec and os.path.abspath(f) != custom_abs]
        patched.append(custom)
        return patched

    def _zip_files(self, files: List[Path], mappings: PathMappings, custom: Optional[Path], dest: Path) -> Path:
        self._log(f"Packaging {len(files)} files to application revision {dest}")

        custom_abs = os.path.abspath(custom) if custom is not None else None
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            with zipfile.ZipFile(dest, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                for f in files:
                    if custom_abs is not None and os.path.abspath(f) == custom_abs:
                        entry = APPSPEC_YML
                    else:
                        entry = mappings.map_path(f)
                    if entry is None:
                        raise PackagingFailure(f"Unexpected application revision file {f}")
                    self._add_file(zf, f, entry, dest)
        except PackagingFailure:
            raise
        except (OSError, zipfile.BadZipFile) as e:
            raise PackagingFailure(f"Failed to package files to application revision {dest}") from e
        return dest

    @staticmethod
    def _add_file(zf: zipfile.ZipFile, f: Path, entry: str, dest: Path) -> None:
        try:
            mtime = os.stat(f).st_mtime
            # zip timestamps start at 1980
            date_time = max(time.localtime(mtime)[:6], (1980, 1, 1, 0, 0, 0))
            info = zipfile.ZipInfo(entry, date_time=date_time)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = 0o644 << 16
            with open(f, "rb") as src, zf.open(info, "w") as target:
                shutil.copyfileobj(src, target, BUFFER_SIZE)
        except OSError as e:
            raise PackagingFailure(f"Failed to add file {f} to application revision {dest}") from e
