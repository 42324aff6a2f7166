"""Supervised claude-max-api-proxy process.

The proxy exposes an OpenAI-compatible endpoint on localhost that the
``claude-max`` reasoning provider talks to. One ClaudeMaxProxy object owns
the child process; nothing else holds the handle.
"""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from typing import Optional

import requests

from errors import ProviderError

logger = logging.getLogger(__name__)

PACKAGE_NAME = "claude-max-api-proxy"
DEFAULT_PORT = 3456
HEALTH_TIMEOUT_S = 2.0
STARTUP_DELAY_S = 2.0
INSTALL_TIMEOUT_S = 120.0


class ClaudeMaxProxy:
    def __init__(
        self,
        port: int = DEFAULT_PORT,
        startup_delay_s: float = STARTUP_DELAY_S,
    ) -> None:
        self.port = port
        self._startup_delay_s = startup_delay_s
        self._process: Optional[subprocess.Popen] = None
        self._lock = threading.Lock()

    @property
    def health_url(self) -> str:
        return f"http://localhost:{self.port}/v1/models"

    def check_installed(self) -> bool:
        try:
            completed = subprocess.run(
                ["npm", "list", "-g", PACKAGE_NAME, "--depth=0"],
                capture_output=True,
                text=True,
                timeout=30,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.debug("npm list failed: %s", exc)
            return False
        return completed.returncode == 0 and PACKAGE_NAME in (completed.stdout or "")

    def install(self) -> None:
        logger.info("Installing %s", PACKAGE_NAME)
        try:
            subprocess.run(
                ["npm", "install", "-g", PACKAGE_NAME],
                capture_output=True,
                text=True,
                timeout=INSTALL_TIMEOUT_S,
                check=True,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            raise ProviderError(f"Failed to install {PACKAGE_NAME}: {exc}") from exc

    def is_running(self) -> bool:
        try:
            resp = requests.get(self.health_url, timeout=HEALTH_TIMEOUT_S)
        except requests.RequestException:
            return False
        return resp.status_code < 500

    def start(self) -> None:
        with self._lock:
            if self._process is not None and self._process.poll() is None:
                return
            logger.info("Starting %s on port %d", PACKAGE_NAME, self.port)
            try:
                self._process = subprocess.Popen(
                    [PACKAGE_NAME, "--port", str(self.port)],
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )
            except OSError as exc:
                self._process = None
                raise ProviderError(f"Failed to start {PACKAGE_NAME}: {exc}") from exc

        time.sleep(self._startup_delay_s)
        if not self.is_running():
            self.stop()
            raise ProviderError("Proxy started but health check failed")
        logger.info("Claude Max proxy is up on port %d", self.port)

    def stop(self) -> None:
        with self._lock:
            process = self._process
            self._process = None
        if process is None:
            return
        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait(timeout=5)
        logger.info("Claude Max proxy exited with code %s", process.returncode)

    def ensure_running(self) -> bool:
        """Start the proxy if it is installed but not answering."""
        if self.is_running():
            return True
        if not self.check_installed():
            logger.warning("%s is not installed", PACKAGE_NAME)
            return False
        self.start()
        return True
