"""Safety-gated execution of the actions chosen by the reasoning provider."""

from __future__ import annotations

import logging
import os
import re
import subprocess
import sys
import webbrowser
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence
from urllib.parse import quote, unquote, urlsplit

from models import Action, ActionKind, ExecutionResult, action_to_params

logger = logging.getLogger(__name__)

BLOCKED_COMMANDS = frozenset({
    "rm", "rmdir", "del", "format", "mkfs", "fdisk",
    "dd", "shred", "wipefs", "diskpart",
    "shutdown", "reboot", "halt", "poweroff",
    "reg", "regedit", "taskkill",
})

ALLOWED_URL_SCHEMES = ("http", "https")
SEARCH_URL = "https://www.google.com/search?q="
COMMAND_TIMEOUT_S = 10.0

UrlOpener = Callable[[str], Any]


def command_basename(command: str) -> str:
    name = re.split(r"[\\/]", command.strip())[-1].lower()
    return os.path.splitext(name)[0]


def is_command_safe(command: str) -> bool:
    return command_basename(command) not in BLOCKED_COMMANDS


def looks_like_path(arg: str) -> bool:
    return "/" in arg or "\\" in arg


def argument_paths(arg: str) -> list[str]:
    """Path-like pieces of one argument.

    Besides the argument itself this yields the value of ``--flag=value`` /
    ``key=value`` and the path behind a ``file://`` prefix.
    """
    candidates = [arg]
    if "=" in arg:
        candidates.append(arg.split("=", 1)[1])
    for candidate in list(candidates):
        if candidate.lower().startswith("file://"):
            candidates.append(unquote(urlsplit(candidate).path))
    return [c for c in candidates if c and looks_like_path(c)]


def is_path_inside(path: str, home: str) -> bool:
    """True when every path-like piece of ``path`` lies in ``home`` or below it."""
    pieces = argument_paths(path)
    return all(_resolves_inside(piece, home) for piece in pieces)


def _resolves_inside(path: str, home: str) -> bool:
    home = os.path.realpath(home)
    if path == "~" or path.startswith(("~/", "~\\")):
        path = os.path.join(home, path[2:])
    if not os.path.isabs(path):
        path = os.path.join(home, path)
    resolved = os.path.realpath(path)
    try:
        return os.path.commonpath([home, resolved]) == home
    except ValueError:
        # different drives on Windows
        return False


def is_url_safe(url: str) -> bool:
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme.lower() in ALLOWED_URL_SCHEMES and bool(parts.netloc)


class ActionExecutor:
    def __init__(
        self,
        home_dir: Optional[str] = None,
        platform: str = sys.platform,
        open_url: UrlOpener = webbrowser.open,
        timeout_s: float = COMMAND_TIMEOUT_S,
    ) -> None:
        self._home_dir = home_dir
        self._platform = platform
        self._open_url = open_url
        self._timeout_s = timeout_s

    @property
    def home_dir(self) -> str:
        return self._home_dir or str(Path.home())

    def execute(self, action: str, params: Optional[Dict[str, Any]] = None) -> ExecutionResult:
        logger.info("Executing action: %s params: %s", action, params)
        try:
            return self._dispatch(action, params or {})
        except Exception as exc:
            logger.error("Action %s failed: %s", action, exc)
            return ExecutionResult(success=False, error=str(exc))

    def execute_action(self, action: Action) -> ExecutionResult:
        action_id, params = action_to_params(action)
        return self.execute(action_id, params)

    def _dispatch(self, action: str, params: Dict[str, Any]) -> ExecutionResult:
        if action == ActionKind.SHELL_COMMAND.value:
            return self._shell_command(params)
        if action == ActionKind.OPEN_URL.value:
            return self._open(params)
        if action == ActionKind.SEARCH_WEB.value:
            return self._search_web(params)
        if action == ActionKind.RESPOND_ONLY.value:
            return ExecutionResult(success=True, output="")
        logger.warning("Unknown action: %s", action)
        return ExecutionResult(success=False, error=f"Unknown action: {action}")

    # ------------------------------------------------------------------
    # shell_command
    # ------------------------------------------------------------------

    def _shell_command(self, params: Dict[str, Any]) -> ExecutionResult:
        command = str(params.get("command") or "").strip()
        raw_args = params.get("args") or []
        if isinstance(raw_args, str):
            raw_args = [raw_args]
        args = [str(a) for a in raw_args]

        if not command:
            return ExecutionResult(success=False, error="No command specified")
        if not is_command_safe(command):
            logger.warning("Blocked dangerous command: %s", command)
            return ExecutionResult(success=False, error=f"Blocked dangerous command: {command}")

        home = self.home_dir
        for arg in args:
            if arg and looks_like_path(arg) and not is_path_inside(arg, home):
                logger.warning("Blocked path outside home directory: %s", arg)
                return ExecutionResult(success=False, error=f"Path outside home directory: {arg}")

        logger.info("Shell command: %s args: %s", command, args)
        try:
            completed = self._run([command, *args])
        except (OSError, subprocess.SubprocessError) as exc:
            logger.info("Direct execution failed: %s - trying platform launcher", exc)
            return self._launch_fallback(command, args, exc)

        stdout = completed.stdout or ""
        stderr = completed.stderr or ""
        logger.info("Shell command succeeded, stdout: %s", stdout[:200])
        return ExecutionResult(success=True, output=stdout or stderr or f"Executed {command}")

    def _run(self, argv: Sequence[str]) -> subprocess.CompletedProcess:
        return subprocess.run(
            list(argv),
            capture_output=True,
            text=True,
            timeout=self._timeout_s,
            cwd=self.home_dir,
            check=True,
        )

    def _launch_fallback(self, command: str, args: Sequence[str], error: Exception) -> ExecutionResult:
        if self._platform == "win32":
            argv = ["cmd", "/c", "start", "", command, *args]
        elif self._platform == "darwin":
            argv = ["open", "-a", command, *args]
        else:
            logger.error("Shell command failed: %s", error)
            return ExecutionResult(success=False, error=str(error))

        try:
            self._run(argv)
        except (OSError, subprocess.SubprocessError) as exc:
            logger.error("Platform launch failed: %s", exc)
            return ExecutionResult(success=False, error=str(exc))
        logger.info("Platform launch succeeded: %s", command)
        return ExecutionResult(success=True, output=f"Launched {command}")

    # ------------------------------------------------------------------
    # open_url / search_web
    # ------------------------------------------------------------------

    def _open(self, params: Dict[str, Any]) -> ExecutionResult:
        url = str(params.get("url") or "").strip()
        if not url:
            return ExecutionResult(success=False, error="No URL specified")
        if not is_url_safe(url):
            logger.warning("Blocked unsafe URL: %s", url)
            return ExecutionResult(success=False, error=f"Unsafe URL: {url}")
        return self._open_external(url, f"Opened {url}")

    def _search_web(self, params: Dict[str, Any]) -> ExecutionResult:
        query = str(params.get("query") or "").strip()
        if not query:
            return ExecutionResult(success=False, error="No search query specified")
        url = SEARCH_URL + quote(query, safe="")
        return self._open_external(url, f"Searched for: {query}")

    def _open_external(self, url: str, output: str) -> ExecutionResult:
        opened = self._open_url(url)
        if opened is False:
            return ExecutionResult(success=False, error=f"No handler available to open {url}")
        return ExecutionResult(success=True, output=output)
