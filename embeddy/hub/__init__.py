"""Model fetchers.

Provides the ModelFetcher interface and the Hugging Face Hub implementation:
- ModelFetcher: abstract base, path layout and completeness checks
- HubFetcher: downloads repository snapshots with huggingface_hub
"""

from .base import (
    CONFIG_FILE,
    TOKENIZER_FILE,
    WEIGHT_FILES,
    ModelFetcher,
    missing_files,
)
from .lib import HubFetcher

__all__ = [
    "ModelFetcher",
    "HubFetcher",
    "missing_files",
    "CONFIG_FILE",
    "TOKENIZER_FILE",
    "WEIGHT_FILES",
]
