# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Capabilities handed to every command handler."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from berth.cli.iostreams import IOStreams
from berth.config import ResolvedConfig, load_config
from berth.context import Context
from berth.engine.client import EngineClient
from berth.resolve import resolve_container_name, resolve_container_names
from berth.session.types import SessionStreams
from berth.term import TerminalController, get_terminal


logger = logging.getLogger(__name__)


@dataclass
class CommandEnv:
    """Everything a command needs from the outside world.

    Tests substitute any of these with fakes.  The engine client and the
    configuration are created lazily, on first use, and cached.

    Attributes:
        io: Host stdio.
        engine_factory: Creates the engine client.
        config_loader: Resolves configuration for a working directory.
        ctx: Root cancellation scope of the invocation.
        terminal: Host terminal controller.
        workdir: Directory used for project discovery.
    """

    io: IOStreams = field(default_factory=IOStreams)
    engine_factory: Callable[[], EngineClient] = EngineClient.from_env
    config_loader: Callable[[Path | None], ResolvedConfig] = load_config
    ctx: Context = field(default_factory=Context)
    terminal: TerminalController = field(default_factory=get_terminal)
    workdir: Path | None = None
    _engine: EngineClient | None = field(default=None, repr=False)
    _config: ResolvedConfig | None = field(default=None, repr=False)

    @property
    def engine(self) -> EngineClient:
        if self._engine is None:
            self._engine = self.engine_factory()
        return self._engine

    @property
    def config(self) -> ResolvedConfig:
        if self._config is None:
            self._config = self.config_loader(self.workdir)
        return self._config

    def close(self) -> None:
        if self._engine is not None:
            self._engine.close()
            self._engine = None

    def session_streams(self) -> SessionStreams:
        return SessionStreams(
            stdin_fd=self.io.stdin_fd(),
            stdout=self.io.stdout_binary,
            stderr=self.io.stderr_binary,
        )

    def container_ref(self, ref: str, agent: bool) -> str:
        """Return the engine reference for a command argument.

        With *agent*, *ref* is an agent token resolved within the
        current project.
        """
        if not agent:
            return ref
        return resolve_container_name(self.config.project_key, ref)

    def container_refs(self, refs: list[str], agent: bool) -> list[str]:
        if not agent:
            return list(refs)
        return resolve_container_names(self.config.project_key, refs)
