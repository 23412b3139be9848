import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from docingest.logging.logger import Log


@contextmanager
def working_directory(path: Path) -> Iterator[Path]:
    """Create a scratch directory and remove it with all contents on exit."""
    path.mkdir(parents=True, exist_ok=True)
    try:
        yield path
    finally:
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            Log.warning(f"Failed to clean up working directory {path}: {exc}")
