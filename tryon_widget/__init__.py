"""
Try-on widget - virtual garment try-on orchestration for embedded storefront widgets.

Turns a shopper's photo and selected garments into cart (one image per
garment) or outfit (one combined image) generation requests.
"""

from pathlib import Path

# Read version from VERSION file (single source of truth)
_version_file = Path(__file__).parent.parent / "VERSION"
if _version_file.exists():
    __version__ = _version_file.read_text().strip()
else:
    __version__ = "0.4.0"  # Fallback for installed builds

from tryon_widget.models import GenerationMode, SelectedGarment, StoreIdentity
from tryon_widget.orchestrator import GenerationOrchestrator, OrchestratorSettings, Phase
from tryon_widget.config import Config

__all__ = [
    "__version__",
    "GenerationMode",
    "SelectedGarment",
    "StoreIdentity",
    "GenerationOrchestrator",
    "OrchestratorSettings",
    "Phase",
    "Config",
]
