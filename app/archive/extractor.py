import shutil
import zipfile
import zlib
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from app.archive.walker import list_files
from app.logging.logger import Log
from app.processor.exceptions import ExtractionError

_COPY_CHUNK_SIZE = 1024 * 1024
_ZIP_ERRORS = (
    zipfile.BadZipFile,
    zipfile.LargeZipFile,
    zlib.error,
    EOFError,
    NotImplementedError,
    RuntimeError,
    OSError,
)


class ZipExtractor:
    """Unpacks one zip archive into a directory with bounded concurrency.

    Entries are written in batches of ``batch_size`` on a thread pool; a batch
    finishes before the next one starts, capping open handles.
    """

    def __init__(self, batch_size: int = 4) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._batch_size = batch_size

    def extract(self, zip_path: Path, output_dir: Path, max_bytes: int | None = None) -> int:
        """Extract every entry of ``zip_path`` below ``output_dir``.

        A partially written ``output_dir`` is left in place on failure.

        Args:
            max_bytes: refuse the archive before writing anything when its
                entries declare more uncompressed bytes than this; None disables.

        Returns:
            The total uncompressed size of the extracted entries.

        Raises:
            ExtractionError: if the archive or any entry cannot be read or
                written, an entry name points outside ``output_dir``, or the
                archive is over ``max_bytes``.
        """
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
            root = output_dir.resolve()
            with (
                zipfile.ZipFile(zip_path) as archive,
                ThreadPoolExecutor(max_workers=self._batch_size) as executor,
            ):
                entries = archive.infolist()
                # entry readers stop at file_size, so the declared sizes bound the output
                total_bytes = sum(info.file_size for info in entries)
                if max_bytes is not None and total_bytes > max_bytes:
                    raise ExtractionError(
                        f"{zip_path.name} expands to {total_bytes} bytes, "
                        f"over the {max_bytes} byte limit"
                    )
                for start in range(0, len(entries), self._batch_size):
                    batch = entries[start : start + self._batch_size]
                    # map re-raises the first entry failure of the batch
                    list(
                        executor.map(
                            lambda info: self._extract_entry(archive, info, root),
                            batch,
                        )
                    )
        except ExtractionError:
            raise
        except _ZIP_ERRORS as exc:
            raise ExtractionError(f"Failed to extract {zip_path.name}: {exc}") from exc

        Log.debug(f"Extracted {len(entries)} entries from {zip_path.name}", output=output_dir)
        return total_bytes

    def _extract_entry(self, archive: zipfile.ZipFile, info: zipfile.ZipInfo, root: Path) -> None:
        target = (root / info.filename).resolve()
        if target != root and root not in target.parents:
            raise ExtractionError(f"Entry {info.filename!r} escapes the output directory")

        if info.is_dir():
            target.mkdir(parents=True, exist_ok=True)
            return

        target.parent.mkdir(parents=True, exist_ok=True)
        with archive.open(info) as source, target.open("wb") as destination:
            shutil.copyfileobj(source, destination, _COPY_CHUNK_SIZE)


class NestedArchiveExtractor:
    """Unpacks an archive and every zip found inside it, depth-first.

    Uses an explicit work-list instead of recursion. The root archive lands in
    ``<work_dir>/extracted``; a nested ``x.zip`` found at ``<work_dir>/<rel>``
    lands in ``<work_dir>/nested/<rel>``.
    """

    EXTRACTED_DIR = "extracted"
    NESTED_DIR = "nested"

    def __init__(
        self,
        extractor: ZipExtractor,
        max_depth: int = 8,
        max_total_bytes: int = 0,
    ) -> None:
        self._extractor = extractor
        self._max_depth = max_depth
        self._max_total_bytes = max_total_bytes

    def extract_all(
        self,
        zip_path: Path,
        work_dir: Path,
        check_deadline: Callable[[], None] | None = None,
    ) -> list[Path]:
        """Fully unpack ``zip_path`` into ``work_dir``.

        Returns:
            Output directories in the order they were extracted.

        Raises:
            ExtractionError: on any archive fault, when nesting exceeds
                ``max_depth``, or when the whole tree would expand past
                ``max_total_bytes`` (0 disables the cap).
        """
        pending: list[tuple[Path, Path, int]] = [
            (zip_path, work_dir / self.EXTRACTED_DIR, 0)
        ]
        extracted: list[Path] = []
        used_bytes = 0

        while pending:
            archive, output_dir, depth = pending.pop()
            if depth > self._max_depth:
                raise ExtractionError(
                    f"Archive {archive.name} is nested deeper than {self._max_depth} levels"
                )
            if check_deadline is not None:
                check_deadline()

            remaining = None
            if self._max_total_bytes > 0:
                remaining = self._max_total_bytes - used_bytes
            used_bytes += self._extractor.extract(archive, output_dir, max_bytes=remaining)
            extracted.append(output_dir)

            nested = self._find_archives(output_dir)
            if nested:
                Log.info(f"Found {len(nested)} nested archive(s) in {archive.name}")
            # reversed so the first nested archive is popped first
            for child in reversed(nested):
                child_output = work_dir / self.NESTED_DIR / child.relative_to(work_dir)
                pending.append((child, child_output, depth + 1))

        return extracted

    @staticmethod
    def _find_archives(directory: Path) -> list[Path]:
        try:
            return [path for path in list_files(directory) if path.suffix.lower() == ".zip"]
        except OSError as exc:
            raise ExtractionError(f"Failed to list {directory}: {exc}") from exc
