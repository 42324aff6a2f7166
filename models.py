"""Core data models for the agent."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class AgentState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    CAPTURING = "capturing"
    PROCESSING = "processing"


class ActionKind(str, Enum):
    SHELL_COMMAND = "shell_command"
    OPEN_URL = "open_url"
    SEARCH_WEB = "search_web"
    RESPOND_ONLY = "respond_only"


@dataclass
class CaptureSession:
    frames: list[Any] = field(default_factory=list)
    silence_frames: int = 0

    def append(self, frame: Any) -> None:
        self.frames.append(frame)

    def clear(self) -> None:
        self.frames = []
        self.silence_frames = 0

    def __len__(self) -> int:
        return len(self.frames)


@dataclass(frozen=True)
class Recording:
    wav_bytes: bytes
    sample_rate: int
    frame_count: int
    duration_s: float
    # capture generation that produced this recording; passed back to resume()
    session_id: int = 0


@dataclass(frozen=True)
class ShellCommand:
    command: str
    args: tuple[str, ...] = ()


@dataclass(frozen=True)
class OpenUrl:
    url: str


@dataclass(frozen=True)
class SearchWeb:
    query: str


@dataclass(frozen=True)
class RespondOnly:
    pass


Action = Union[ShellCommand, OpenUrl, SearchWeb, RespondOnly]


def parse_action(action_id: str, params: dict[str, Any] | None) -> Action | None:
    """Build the typed variant for an action id, or None for unknown ids."""
    params = params or {}
    if action_id == ActionKind.SHELL_COMMAND.value:
        args = params.get("args") or []
        if isinstance(args, str):
            args = [args]
        return ShellCommand(
            command=str(params.get("command") or ""),
            args=tuple(str(a) for a in args),
        )
    if action_id == ActionKind.OPEN_URL.value:
        return OpenUrl(url=str(params.get("url") or ""))
    if action_id == ActionKind.SEARCH_WEB.value:
        return SearchWeb(query=str(params.get("query") or ""))
    if action_id == ActionKind.RESPOND_ONLY.value:
        return RespondOnly()
    return None


def action_to_params(action: Action) -> tuple[str, dict[str, Any]]:
    if isinstance(action, ShellCommand):
        return ActionKind.SHELL_COMMAND.value, {"command": action.command, "args": list(action.args)}
    if isinstance(action, OpenUrl):
        return ActionKind.OPEN_URL.value, {"url": action.url}
    if isinstance(action, SearchWeb):
        return ActionKind.SEARCH_WEB.value, {"query": action.query}
    return ActionKind.RESPOND_ONLY.value, {}


@dataclass
class ReasoningResult:
    action: str = ActionKind.RESPOND_ONLY.value
    params: dict[str, Any] = field(default_factory=dict)
    speak: str = ""
    explanation: str = ""

    def to_action(self) -> Action | None:
        return parse_action(self.action, self.params)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "params": dict(self.params),
            "speak": self.speak,
            "explanation": self.explanation,
        }


@dataclass(frozen=True)
class ProviderConfig:
    provider: str
    base_url: str
    model: str
    api_key: str = ""


@dataclass
class ExecutionResult:
    success: bool
    output: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.output is not None:
            data["output"] = self.output
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class TurnResult:
    transcript: str
    reasoning: ReasoningResult
    execution: ExecutionResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "transcript": self.transcript,
            "action": self.reasoning.action,
            "speak": self.reasoning.speak,
            "explanation": self.reasoning.explanation,
            "result": self.execution.to_dict(),
        }
