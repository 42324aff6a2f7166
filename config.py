"""JSON-based settings store and the settings snapshot passed around the agent."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class AgentSettings:
    enabled: bool = False
    picovoice_access_key: str = ""
    wake_keyword: str = "jarvis"
    wake_sensitivity: float = 0.5
    silence_timeout: float = 1.5
    reasoning_provider: str = "ollama"
    reasoning_model: str = "qwen2.5:3b"
    custom_endpoint_url: str = ""
    ollama_url: str = "http://localhost:11434"
    local_url: str = "http://localhost:8080"
    claude_max_proxy_port: int = 3456
    tts_enabled: bool = True
    tts_provider: str = "system"
    tts_voice: str = "alloy"
    custom_system_prompt: str = ""
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    gemini_api_key: str = ""
    groq_api_key: str = ""
    dashscope_api_key: str = ""
    transcription_language: str = "en"


_FIELD_NAMES = {f.name for f in fields(AgentSettings)}

# provider id -> (settings key, environment variable)
API_KEY_FIELDS = {
    "openai": ("openai_api_key", "OPENAI_API_KEY"),
    "anthropic": ("anthropic_api_key", "ANTHROPIC_API_KEY"),
    "gemini": ("gemini_api_key", "GEMINI_API_KEY"),
    "groq": ("groq_api_key", "GROQ_API_KEY"),
    "picovoice": ("picovoice_access_key", "PICOVOICE_ACCESS_KEY"),
    "dashscope": ("dashscope_api_key", "DASHSCOPE_API_KEY"),
}


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "voice_agent" / "settings.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def get_settings(self) -> AgentSettings:
        """Snapshot of the stored settings merged over defaults and env keys."""
        data = {k: v for k, v in self._read_all().items() if k in _FIELD_NAMES}
        settings = AgentSettings(**data)
        overrides = {}
        for key_field, env_name in API_KEY_FIELDS.values():
            if not getattr(settings, key_field):
                env_value = os.getenv(env_name, "")
                if env_value:
                    overrides[key_field] = env_value
        return replace(settings, **overrides) if overrides else settings

    def get(self, key: str) -> Any:
        if key not in _FIELD_NAMES:
            raise KeyError(key)
        return getattr(self.get_settings(), key)

    def set(self, key: str, value: Any) -> None:
        self.update({key: value})

    def update(self, partial: dict[str, Any]) -> None:
        unknown = set(partial) - _FIELD_NAMES
        if unknown:
            raise KeyError(", ".join(sorted(unknown)))
        data = self._read_all()
        data.update(partial)
        self._write_all(data)

    def get_all(self) -> dict[str, Any]:
        return asdict(self.get_settings())

    def get_api_key(self, provider: str) -> str:
        entry = API_KEY_FIELDS.get(provider)
        if entry is None:
            return ""
        return str(getattr(self.get_settings(), entry[0]))

    def set_api_key(self, provider: str, key: str) -> None:
        entry = API_KEY_FIELDS.get(provider)
        if entry is None:
            return
        self.update({entry[0]: key})

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
