import yaml
import os
import logging
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger("models")

# provider -> embedding model id
ModelCfg = Dict[str, str]

_cfg: Optional[ModelCfg] = None

def get_defaults() -> ModelCfg:
    return {
        "openai": "text-embedding-3-small",
        "ollama": "nomic-embed-text",
        "synthetic": "synthetic-768",
    }

def load_models(path: Optional[str] = None) -> ModelCfg:
    global _cfg
    if _cfg is not None and path is None: return _cfg

    p = Path(path or os.getenv("CM_MODELS", "models.yml"))
    if not p.exists():
        logger.debug("[MODELS] models.yml not found, using defaults")
        return get_defaults()

    try:
        with open(p, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"[MODELS] Failed to parse {p}: {e}")
        return get_defaults()

    cfg = get_defaults()
    emb = data.get("embeddings", data) if isinstance(data, dict) else {}
    cfg.update({str(k): str(v) for k, v in emb.items() if isinstance(v, (str, int, float))})
    logger.info(f"[MODELS] Loaded {p}")
    if path is None: _cfg = cfg
    return cfg

def get_model(provider: str) -> Optional[str]:
    return load_models().get(provider)
