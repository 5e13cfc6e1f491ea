# =============================================================================
# NAV INDEX (search these tags)
# [NAV-00] Imports / constants
# [NAV-10] Config loading (defaults/roaming)
# [NAV-20] Typed view
# [NAV-99] End
# =============================================================================

# === [NAV-00] Imports / constants ============================================
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Dict, Optional

CONFIG_PATH = Path("data/roaming/preview_config.json")
_DEFAULT_PREVIEW_CONFIG = {
    "identity_key_field": "id",
    "reuse_identical_bundles": False,
    "evict_after_misses": 2,
    "pump_interval_ms": 30,
    "ready_timeout_s": 5.0,
}


# === [NAV-20] Typed view ======================================================
@dataclass
class PreviewConfig:
    identity_key_field: str = "id"
    reuse_identical_bundles: bool = False
    evict_after_misses: int = 2
    pump_interval_ms: int = 30
    ready_timeout_s: float = 5.0

    @classmethod
    def from_dict(cls, data: Dict) -> "PreviewConfig":
        known = {f.name for f in fields(cls)}
        config = cls(**{key: value for key, value in data.items() if key in known})
        config.identity_key_field = str(config.identity_key_field or "id")
        config.reuse_identical_bundles = bool(config.reuse_identical_bundles)
        config.evict_after_misses = max(1, int(config.evict_after_misses))
        config.pump_interval_ms = max(1, int(config.pump_interval_ms))
        config.ready_timeout_s = float(config.ready_timeout_s)
        return config

    def to_dict(self) -> Dict:
        return asdict(self)


# === [NAV-10] Config loading (defaults/roaming) ===============================
def load_preview_config(path: Optional[Path] = None) -> PreviewConfig:
    path = path or CONFIG_PATH
    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(_DEFAULT_PREVIEW_CONFIG, indent=2), encoding="utf-8")
        return PreviewConfig.from_dict(_DEFAULT_PREVIEW_CONFIG)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return PreviewConfig.from_dict(_DEFAULT_PREVIEW_CONFIG)
    if not isinstance(data, dict):
        return PreviewConfig.from_dict(_DEFAULT_PREVIEW_CONFIG)
    for key, value in _DEFAULT_PREVIEW_CONFIG.items():
        data.setdefault(key, value)
    try:
        return PreviewConfig.from_dict(data)
    except (TypeError, ValueError):
        return PreviewConfig.from_dict(_DEFAULT_PREVIEW_CONFIG)


def save_preview_config(config: PreviewConfig, path: Optional[Path] = None) -> None:
    path = path or CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config.to_dict(), indent=2), encoding="utf-8")


# === [NAV-99] End =============================================================
__all__ = [
    "CONFIG_PATH",
    "PreviewConfig",
    "load_preview_config",
    "save_preview_config",
]
