"""Configuration management for Quill."""

import json
from pathlib import Path

from pydantic import BaseModel


class LLMConfig(BaseModel):
    endpoint: str = "http://localhost:8000/api/llm/chat/completions"
    model: str = "qwen-turbo"
    api_key_env: str = "QUILL_LLM_API_KEY"
    timeout_seconds: float = 60.0


class StoreConfig(BaseModel):
    kind: str = "file"
    base_url: str = "http://127.0.0.1:8090"
    data_dir: str = ""
    atomic_increment: bool = False
    token_env: str = "QUILL_STORE_TOKEN"


class SettingsConfig(BaseModel):
    default_creator: str = "local"


class QuillConfig(BaseModel):
    llm: LLMConfig = LLMConfig()
    store: StoreConfig = StoreConfig()
    settings: SettingsConfig = SettingsConfig()


def _config_dir() -> Path:
    return Path.home() / ".quill"


def _config_path() -> Path:
    return _config_dir() / "config.json"


def records_dir(config: QuillConfig | None = None) -> Path:
    """Return the directory used by the file-backed record store."""
    if config is not None and config.store.data_dir:
        return Path(config.store.data_dir).expanduser()
    return _config_dir() / "records"


def ensure_dirs() -> None:
    """Create required Quill directories."""
    base = _config_dir()
    base.mkdir(exist_ok=True)
    (base / "records").mkdir(exist_ok=True)


def load_config() -> QuillConfig:
    """Load config from ~/.quill/config.json, returning defaults if missing."""
    path = _config_path()
    if not path.exists():
        return QuillConfig()
    text = path.read_text()
    return QuillConfig.model_validate_json(text)


def save_config(config: QuillConfig) -> None:
    """Save config to ~/.quill/config.json."""
    ensure_dirs()
    path = _config_path()
    path.write_text(json.dumps(config.model_dump(), indent=2) + "\n")
