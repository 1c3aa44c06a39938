"""Abstract base class for model fetchers."""

import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path

from embeddy.registry import model_dir_name

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.json"
TOKENIZER_FILE = "tokenizer.json"
WEIGHT_FILES = ("model.safetensors", "pytorch_model.bin")


def missing_files(path: Path) -> list[str]:
    """List required model files absent from `path`.

    A complete model has a config, a fast tokenizer, and weights in one of
    the supported formats.
    """
    missing = [
        name for name in (CONFIG_FILE, TOKENIZER_FILE) if not (path / name).is_file()
    ]
    if not any((path / name).is_file() for name in WEIGHT_FILES):
        missing.append(" or ".join(WEIGHT_FILES))
    return missing


class ModelFetcher(ABC):
    """Abstract interface for bringing model files onto local storage.

    Fetchers own a models directory and store each remote model in its own
    subdirectory. They never touch the registry; recording the alias is the
    caller's job once ensure_local() succeeded.
    """

    def __init__(self, models_dir: Path | str):
        self._models_dir = Path(models_dir)

    @property
    def models_dir(self) -> Path:
        """Directory holding one subdirectory per remote model."""
        return self._models_dir

    def local_path(self, remote_id: str) -> Path:
        """Storage directory for a remote id."""
        return self._models_dir / model_dir_name(remote_id)

    def is_complete(self, path: Path) -> bool:
        """Check that `path` holds every required model file."""
        return path.is_dir() and not missing_files(path)

    def delete(self, remote_id: str) -> bool:
        """Delete a downloaded model.

        Returns:
            True if deleted, False if not found.
        """
        model_path = self.local_path(remote_id)
        if not model_path.exists():
            return False
        shutil.rmtree(model_path)
        logger.info(f"Deleted model '{remote_id}' from {model_path}")
        return True

    @abstractmethod
    def ensure_local(self, remote_id: str) -> Path:
        """Make the model's files available locally.

        Idempotent: returns immediately, without network access, when the
        files are already present and complete.

        Args:
            remote_id: Hub identifier (e.g. "org/model-name").

        Returns:
            Directory containing the model files.

        Raises:
            DownloadFailedError: On network or hub errors.
            IncompleteModelError: If required files are missing afterwards.
        """

    @property
    def name(self) -> str:
        """Get fetcher name for logging."""
        return self.__class__.__name__


__all__ = [
    "CONFIG_FILE",
    "TOKENIZER_FILE",
    "WEIGHT_FILES",
    "ModelFetcher",
    "missing_files",
]
