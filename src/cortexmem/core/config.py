import os
from pathlib import Path
from typing import Optional, Any
from dotenv import load_dotenv

# .env at the project root (src/cortexmem/core -> ../../../.env), then cwd
load_dotenv(Path(__file__).parent.parent.parent.parent / ".env")
load_dotenv()

def num(v: Optional[str], d: int | float) -> int | float:
    try:
        return float(v) if v else d
    except ValueError:
        return d

def s_bool(v: Optional[str], d: bool = False) -> bool:
    if v is None or v == "": return d
    return str(v).lower() in ("1", "true", "yes", "on")

try:
    import tomllib
except ImportError:
    import tomli as tomllib

class EnvConfig:
    def __init__(self, toml_path: Optional[str] = None):
        self._toml = {}
        path = Path(toml_path or os.getenv("CM_CONFIG", "cortexmem.toml"))
        if path.exists():
            with open(path, "rb") as f:
                self._toml = tomllib.load(f)

        def get(sec: str, key: str, env_var: str, default: Any) -> Any:
            val = self._toml.get(sec, {}).get(key)
            if val is not None: return val
            return os.getenv(env_var, default)

        # [db]
        self.db_url = get("db", "url", "CM_DB_URL", "sqlite:///cortexmem.db")
        self.db_path = self.db_url.replace("sqlite:///", "") if self.db_url.startswith("sqlite:///") else None
        self.seg_size = int(num(str(get("db", "segment_size", "CM_SEG_SIZE", "")), 10000))

        # [search]
        self.cache_ttl_ms = int(num(str(get("search", "cache_ttl_ms", "CM_CACHE_TTL_MS", "")), 60000))
        self.cache_max_entries = int(num(str(get("search", "cache_max_entries", "CM_CACHE_MAX", "")), 256))
        self.default_limit = int(num(str(get("search", "default_limit", "CM_SEARCH_LIMIT", "")), 10))
        self.context_limit = int(num(str(get("search", "context_limit", "CM_CONTEXT_LIMIT", "")), 3))

        # [ai]
        self.emb_kind = get("ai", "embedding_provider", "CM_EMBED_KIND", "synthetic")
        self.vec_dim = int(num(str(get("ai", "vector_dim", "CM_VEC_DIM", "")), 768))
        self.openai_key = get("ai", "openai_key", "OPENAI_API_KEY", "") or os.getenv("CM_OPENAI_API_KEY", "")
        self.openai_base_url = get("ai", "openai_base", "CM_OPENAI_BASE_URL", "https://api.openai.com/v1")
        self.openai_embedding_model = get("ai", "openai_embedding_model", "CM_EMBED_MODEL", None)
        self.ollama_url = get("ai", "ollama_url", "OLLAMA_URL", "http://localhost:11434")
        self.ollama_embedding_model = get("ai", "ollama_embedding_model", "CM_OLLAMA_EMBEDDING_MODEL", None)

        self.llm_provider = get("ai", "llm_provider", "CM_LLM_PROVIDER", "openai")
        self.llm_model = get("ai", "llm_model", "CM_LLM_MODEL", None)
        self.llm_temperature = float(num(str(get("ai", "llm_temperature", "CM_LLM_TEMPERATURE", "")), 0.3))
        self.llm_max_tokens = int(num(str(get("ai", "llm_max_tokens", "CM_LLM_MAX_TOKENS", "")), 1000))

        # [consolidate]
        self.consolidate_enabled = s_bool(str(get("consolidate", "enabled", "CM_CONSOLIDATE", "")), True)

    @property
    def database_url(self) -> str:
        return self.db_url

    @database_url.setter
    def database_url(self, val: str):
        self.db_url = val
        self.db_path = val.replace("sqlite:///", "") if val.startswith("sqlite:///") else None

env = EnvConfig()
