"""Hugging Face Hub model fetcher.

Downloads a model repository snapshot into {models_dir}/{org}--{name}
using huggingface_hub. Safetensors weights are preferred; the PyTorch
pickle is only fetched when a repository ships no safetensors file.
"""

from __future__ import annotations

import logging
from pathlib import Path

from embeddy.core.errors import DownloadFailedError, IncompleteModelError

from .base import WEIGHT_FILES, ModelFetcher, missing_files

logger = logging.getLogger(__name__)

# Alternative weight formats the engine never reads
_IGNORE_PATTERNS = [
    "*.onnx",
    "onnx/*",
    "openvino/*",
    "coreml/*",
    "*.h5",
    "*.msgpack",
    "*.ot",
    "*.tflite",
    "*.gguf",
]


class HubFetcher(ModelFetcher):
    """Model fetcher backed by the Hugging Face Hub.

    Example:
        >>> fetcher = HubFetcher("~/.embeddy/models")
        >>> path = fetcher.ensure_local("sentence-transformers/all-MiniLM-L6-v2")
        >>> sorted(p.name for p in path.iterdir())[:2]
        ['1_Pooling', 'README.md']
    """

    def __init__(
        self,
        models_dir: Path | str,
        token: str | None = None,
        revision: str | None = None,
    ):
        """Initialize the fetcher.

        Args:
            models_dir: Directory holding one subdirectory per model.
            token: Hub token for gated or private repositories.
            revision: Git revision to download (default branch if None).
        """
        super().__init__(models_dir)
        self._token = token
        self._revision = revision

    def ensure_local(self, remote_id: str) -> Path:
        model_path = self.local_path(remote_id)

        if self.is_complete(model_path):
            logger.debug(f"Model '{remote_id}' already present at {model_path}")
            return model_path

        model_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Downloading model '{remote_id}' to {model_path}")

        self._snapshot(
            remote_id,
            model_path,
            ignore_patterns=[*_IGNORE_PATTERNS, "*.bin"],
        )
        if not any((model_path / name).is_file() for name in WEIGHT_FILES):
            logger.info(f"No safetensors weights for '{remote_id}', trying PyTorch")
            self._snapshot(remote_id, model_path, allow_patterns=["pytorch_model.bin"])

        missing = missing_files(model_path)
        if missing:
            raise IncompleteModelError(remote_id, missing)

        logger.info(f"Model '{remote_id}' downloaded successfully")
        return model_path

    def _snapshot(
        self,
        remote_id: str,
        model_path: Path,
        allow_patterns: list[str] | None = None,
        ignore_patterns: list[str] | None = None,
    ) -> None:
        """Run one snapshot download, mapping every failure to DownloadFailedError."""
        try:
            from huggingface_hub import snapshot_download
        except ImportError as e:
            raise ImportError(
                "huggingface_hub required for model download. "
                "Install with: pip install huggingface_hub"
            ) from e

        try:
            snapshot_download(
                repo_id=remote_id,
                revision=self._revision,
                local_dir=str(model_path),
                token=self._token,
                allow_patterns=allow_patterns,
                ignore_patterns=ignore_patterns,
            )
        except Exception as e:
            raise DownloadFailedError(
                f"Could not download '{remote_id}': {e}"
            ) from e


__all__ = ["HubFetcher"]
