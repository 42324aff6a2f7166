"""Application entrypoint."""

from __future__ import annotations

import argparse
import logging
import signal
import threading
from pathlib import Path
from typing import Any, Optional

from agent import VoiceAgent
from config import JsonConfigStore
from errors import AgentError
from events import ALL, ERROR, SPEAK, TURN_RESULT, EventHub
from executor import ActionExecutor
from proxy import ClaudeMaxProxy
from reasoning import ReasoningBridge
from recorder import sounddevice_source_factory
from transcriber import DashscopeTranscriber
from tts import Speaker
from wakeword import PorcupineWakeWordEngine

logger = logging.getLogger("voice_agent")


class App:
    def __init__(self, config_path: Optional[Path] = None, force_start: bool = False) -> None:
        self.config_store = JsonConfigStore(path=config_path)
        settings = self.config_store.get_settings()

        self.events = EventHub()
        self.events.subscribe(ALL, self._on_event)
        self.proxy = ClaudeMaxProxy(port=settings.claude_max_proxy_port)
        self.agent = VoiceAgent(
            settings_source=self.config_store,
            engine_factory=PorcupineWakeWordEngine.create,
            source_factory=sounddevice_source_factory,
            transcriber=DashscopeTranscriber(settings_source=self.config_store),
            bridge=ReasoningBridge(self.config_store),
            executor=ActionExecutor(),
            events=self.events,
            speaker=Speaker(events=self.events),
        )
        self._force_start = force_start
        self._stopped = threading.Event()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _on_event(self, name: str, payload: dict[str, Any]) -> None:
        if name == ERROR:
            logger.error("%s: %s", payload.get("code"), payload.get("error"))
        elif name == TURN_RESULT:
            logger.info("Turn: %s -> %s (%s)", payload.get("transcript"), payload.get("action"), payload.get("result"))
        elif name == SPEAK:
            print(payload.get("text", ""))
        else:
            logger.debug("Event %s %s", name, payload)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        settings = self.config_store.get_settings()
        if not settings.enabled and not self._force_start:
            logger.warning(
                "Voice agent is disabled in %s (enabled=false), pass --start to run anyway",
                self.config_store.path,
            )
            return 0

        if settings.reasoning_provider == "claude-max":
            try:
                self.proxy.ensure_running()
            except AgentError as exc:
                logger.warning("Claude Max proxy unavailable: %s", exc.message)

        try:
            self.agent.start()
        except AgentError as exc:
            logger.error("Start failed (%s): %s", exc.code, exc.message)
            self.proxy.stop()
            return 1

        logger.info("Listening for wake word %r, press Ctrl+C to quit", settings.wake_keyword)
        signal.signal(signal.SIGTERM, lambda *_: self._stopped.set())
        try:
            while not self._stopped.wait(0.5):
                if not self.agent.is_running():
                    logger.error("Agent stopped unexpectedly")
                    break
        except KeyboardInterrupt:
            pass
        finally:
            self.quit()
        return 0

    def quit(self) -> None:
        self.agent.stop()
        self.proxy.stop()
        self._stopped.set()


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Voice-triggered local command agent")
    parser.add_argument("--config", type=Path, default=None, help="Path to settings.json")
    parser.add_argument("--start", action="store_true", help="Start even when disabled in settings")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    app = App(config_path=args.config, force_start=args.start)
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
