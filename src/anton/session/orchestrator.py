"""Session orchestrator — hide the agent's boot, play the battle, hand over.

    spawn (suppressed) -> wait ready -> dispose suppression -> battle
        -> clear + banner + prompt tail -> forced resize -> passthrough

The wrapped agent's own startup banner never reaches the screen. Its output
is buffered until readiness, the tail that holds the input prompt is
replayed under our banner, and from then on bytes flow unchanged in both
directions until the child exits.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable

from rich.console import Console

from anton.animation.dialogue import load_random_dialogue
from anton.animation.render import RichDisplay
from anton.animation.sequencer import AnimationSequencer, Display, TransitionObserver
from anton.assets import load_logo_template_or_default, load_personality_or_default
from anton.branding import (
    UNKNOWN_MODEL,
    UNKNOWN_VERSION,
    format_banner,
    loading_banner,
    print_banner,
    probe_banner_text,
    probe_version_text,
)
from anton.config import AntonConfig
from anton.pty.buffer import OutputBuffer
from anton.pty.proxy import PTYProxy
from anton.pty.subscription import Subscription
from anton.pty.terminal import RealTerminal
from anton.session.detect import ReadinessDetector, ReadinessReason
from anton.session.patcher import BrandPatcher

logger = logging.getLogger(__name__)

PERSONALITY_FLAG = "--append-system-prompt"
NO_TAIL_SPACING = "\n\n"

Spawner = Callable[..., PTYProxy]
BannerProbe = Callable[[str, float], Awaitable[str]]


class RelayMode(enum.Enum):
    """Where the agent's output goes right now."""

    SUPPRESSED = "suppressed"  # Into the OutputBuffer only
    PASSTHROUGH = "passthrough"  # Straight to the real terminal


@dataclass
class Session:
    """One run of the wrapped agent."""

    proxy: PTYProxy
    cols: int
    rows: int
    mode: RelayMode = RelayMode.SUPPRESSED
    raw: bool = False
    readiness: ReadinessReason | None = None
    exit_code: int | None = None


class SessionOrchestrator:
    """Drives one session from spawn to child exit.

    Every collaborator is injectable so the whole flow runs under tests
    with a fake proxy and a fake terminal.
    """

    def __init__(
        self,
        config: AntonConfig,
        terminal: RealTerminal,
        *,
        spawn: Spawner = PTYProxy.spawn,
        display_factory: Callable[[], Display] | None = None,
        probe: BannerProbe = probe_banner_text,
        version_probe: BannerProbe = probe_version_text,
        console: Console | None = None,
        rng: random.Random | None = None,
        on_transition: TransitionObserver | None = None,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        self.config = config
        self.terminal = terminal
        self.console = console or Console()
        self._spawn = spawn
        self._display_factory = display_factory or (lambda: RichDisplay(self.console))
        self._probe = probe
        self._version_probe = version_probe
        self._rng = rng
        self._on_transition = on_transition
        self._cwd = cwd
        self._env = env

        self.buffer = OutputBuffer()
        self.detector = ReadinessDetector(config.detection)
        self.session: Session | None = None
        self._template: str | None = None

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    @property
    def logo_template(self) -> str:
        if self._template is None:
            self._template = load_logo_template_or_default(self.config.logo_file)
        return self._template

    def build_argv(self, args: list[str]) -> list[str]:
        """Personality first, then the user's arguments unchanged."""
        personality = load_personality_or_default(self.config.personality_file)
        return [PERSONALITY_FLAG, personality, *args]

    def _start(self, argv: list[str]) -> Session:
        cols, rows = self.terminal.size()
        proxy = self._spawn(
            self.config.claude_bin, argv, cols, rows, cwd=self._cwd, env=self._env
        )
        self.session = Session(proxy=proxy, cols=cols, rows=rows)
        return self.session

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run(self, args: list[str]) -> int:
        """Run the full branded session and return the child's exit code."""
        self.terminal.install_restore_hooks(asyncio.get_running_loop())
        session = self._start(self.build_argv(args))
        probe_task = asyncio.create_task(
            self._probe(self.config.claude_bin, self.config.version_probe_timeout)
        )
        try:
            session.exit_code = await self._run_session(session, probe_task)
            return session.exit_code
        except BaseException:
            logger.exception("Session failed, killing the agent")
            session.proxy.kill()
            raise
        finally:
            if not probe_task.done():
                probe_task.cancel()
            self.terminal.restore()
            self._mark_cooked()

    async def run_direct(self, args: list[str]) -> int:
        """Banner, then the child in plain passthrough. Used for ``--help``."""
        self.terminal.install_restore_hooks(asyncio.get_running_loop())
        await self.show_version_banner()
        session = self._start(list(args))
        try:
            self.terminal.enter_raw()
            session.raw = self.terminal.raw
            session.exit_code = await self._passthrough(session)
            return session.exit_code
        except BaseException:
            session.proxy.kill()
            raise
        finally:
            self.terminal.restore()
            self._mark_cooked()

    async def show_version_banner(self) -> None:
        """Print the logo with the agent's version. No session is started."""
        version = await self._version_probe(
            self.config.claude_bin, self.config.version_probe_timeout
        )
        print_banner(self.console, format_banner(self.logo_template, version))

    # ------------------------------------------------------------------
    # Session flow
    # ------------------------------------------------------------------

    async def _run_session(self, session: Session, probe_task: asyncio.Task[str]) -> int:
        proxy = session.proxy
        suppressed = proxy.on_data(self.buffer.append)
        self.terminal.enter_raw()
        session.raw = self.terminal.raw
        self.terminal.hide_cursor()

        ready_task = asyncio.create_task(self.detector.wait_ready(self.buffer))
        exit_task = asyncio.create_task(proxy.wait())
        try:
            done, _ = await asyncio.wait(
                {ready_task, exit_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            suppressed.dispose()
            for task in (ready_task, exit_task):
                if not task.done():
                    task.cancel()

        if ready_task not in done:
            # Exited while booting: show whatever it printed, then leave
            code = exit_task.result()
            logger.warning("Agent exited during startup (code=%d)", code)
            self.terminal.write(self.buffer.unflushed())
            self.buffer.mark_flushed()
            return code

        session.readiness = ready_task.result()
        detection = self.config.detection
        tail = self.buffer.capture_prompt_tail(detection.separator, detection.prompt_marker)

        if self.config.skip_battle:
            logger.info("Battle skipped")
        else:
            await self._play_battle(probe_task)

        banner = format_banner(self.logo_template, await self._banner_text(probe_task))
        self._replay(banner, tail)
        self.buffer.clear()

        session.cols, session.rows = self.terminal.size()
        proxy.resize(session.cols, session.rows, force=True)
        return await self._passthrough(session)

    async def _play_battle(self, probe_task: asyncio.Task[str]) -> None:
        dialogue = await load_random_dialogue(self.config.cache_file, self._rng)
        template = self.logo_template

        def logo() -> str:
            if probe_task.done() and not probe_task.cancelled():
                if probe_task.exception() is None:
                    return format_banner(template, probe_task.result())
            return loading_banner(template)

        sequencer = AnimationSequencer(
            dialogue,
            logo,
            self._display_factory(),
            self.config.animation,
            on_transition=self._on_transition,
        )
        try:
            await sequencer.run()
        except Exception:
            logger.exception("Battle animation failed, continuing to the agent")
        # Stopping the live display shows the cursor again
        self.terminal.hide_cursor()

    async def _banner_text(self, probe_task: asyncio.Task[str]) -> str:
        try:
            return await asyncio.wait_for(
                asyncio.shield(probe_task), timeout=self.config.version_probe_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Version probe still running after %.1fs", self.config.version_probe_timeout
            )
            probe_task.cancel()
        except Exception as e:
            logger.warning("Version probe failed: %s", e)
        return f"{UNKNOWN_VERSION} ({UNKNOWN_MODEL})"

    def _replay(self, banner: str, tail: str | None) -> None:
        self.terminal.clear_screen()
        print_banner(self.console, banner)
        if not tail:
            logger.debug("No prompt tail captured")
            self.terminal.write(NO_TAIL_SPACING)
            return
        if self.config.rebrand_prompt:
            tail = BrandPatcher().patch(tail)
        self.terminal.write(tail)

    async def _passthrough(self, session: Session) -> int:
        proxy = session.proxy
        session.mode = RelayMode.PASSTHROUGH
        subscriptions: list[Subscription] = []
        try:
            subscriptions.append(proxy.on_data(self.terminal.write))
            self.terminal.flush_input()
            subscriptions.append(self.terminal.on_input(proxy.write))
            subscriptions.append(self.terminal.on_resize(self._resize_handler(session)))
            logger.info("Passthrough started (pid=%d)", proxy.pid)
            return await proxy.wait()
        finally:
            for sub in subscriptions:
                sub.dispose()

    def _mark_cooked(self) -> None:
        if self.session is not None:
            self.session.raw = False

    @staticmethod
    def _resize_handler(session: Session) -> Callable[[int, int], None]:
        def _on_resize(cols: int, rows: int) -> None:
            session.cols, session.rows = cols, rows
            session.proxy.resize(cols, rows)

        return _on_resize
