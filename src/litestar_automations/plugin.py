"""Litestar plugin for automation integration.

This module provides the AutomationsPlugin for integrating litestar-automations
with Litestar applications.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from litestar.di import Provide
from litestar.plugins import InitPluginProtocol

from litestar_automations.actions.dispatcher import ActionDispatcher
from litestar_automations.config import EngineConfig
from litestar_automations.core.protocols import DefinitionStore
from litestar_automations.engine.poller import ResumePoller
from litestar_automations.engine.registry import DefinitionRegistry
from litestar_automations.engine.scheduler import Scheduler
from litestar_automations.engine.store import InMemoryExecutionStore
from litestar_automations.logging import configure_logging, get_logger

if TYPE_CHECKING:
    from litestar.config.app import AppConfig

    from litestar_automations.core.protocols import EventBus, ExecutionStore, LeaseManager

__all__ = ["AutomationsPlugin", "AutomationsPluginConfig"]

logger = get_logger(__name__)


@dataclass
class AutomationsPluginConfig:
    """Configuration for the AutomationsPlugin.

    Attributes:
        scheduler: Optional pre-configured Scheduler. If not provided, one is
            built from the stores and dispatcher below.
        definitions: Definition store. Defaults to an in-memory DefinitionRegistry.
        executions: Execution store. Defaults to an in-memory store.
        leases: Lease manager. Defaults to an in-memory lease table.
        dispatcher: Action dispatcher. Defaults to one without adapters.
        engine_config: Engine limits and timings.
        event_bus: Optional receiver of execution lifecycle notifications.
        dependency_key_scheduler: The key used for dependency injection of the
            Scheduler. Defaults to "automation_scheduler".
        dependency_key_definitions: The key used for dependency injection of the
            definition store. Defaults to "automation_definitions".
        start_poller: Whether to run the resume poller during the app lifespan.
        poll_interval: Seconds between polls. Defaults to the engine config's.
        configure_logging: Whether to configure structlog on startup.
        log_level: Logging level used when configuring logging.
        json_logs: Whether configured logging renders JSON.
    """

    scheduler: Scheduler | None = None
    definitions: DefinitionStore | None = None
    executions: ExecutionStore | None = None
    leases: LeaseManager | None = None
    dispatcher: ActionDispatcher | None = None
    engine_config: EngineConfig | None = None
    event_bus: EventBus | None = None
    dependency_key_scheduler: str = "automation_scheduler"
    dependency_key_definitions: str = "automation_definitions"
    start_poller: bool = True
    poll_interval: float | None = None
    configure_logging: bool = False
    log_level: str = "INFO"
    json_logs: bool = True


class AutomationsPlugin(InitPluginProtocol):
    """Litestar plugin running the automation engine.

    This plugin provides the Scheduler and the definition store through
    dependency injection, and runs the resume poller for the lifetime of the app.

    Example:
        Basic usage::

            from litestar import Litestar, post
            from litestar_automations import ActionDispatcher, Scheduler, TriggerEvent
            from litestar_automations.plugin import AutomationsPlugin, AutomationsPluginConfig

            plugin = AutomationsPlugin(AutomationsPluginConfig(dispatcher=ActionDispatcher(messages=sender)))


            @post("/events")
            async def receive_event(data: dict, automation_scheduler: Scheduler) -> dict:
                executions = await automation_scheduler.submit(TriggerEvent(**data))
                return {"executions": [str(e.id) for e in executions]}


            app = Litestar(route_handlers=[receive_event], plugins=[plugin])
    """

    __slots__ = ("_config", "_poller", "_scheduler")

    def __init__(self, config: AutomationsPluginConfig | None = None) -> None:
        """Initialize the plugin.

        Args:
            config: Optional configuration for the plugin.
        """
        self._config = config or AutomationsPluginConfig()
        self._scheduler: Scheduler | None = None
        self._poller: ResumePoller | None = None

    @property
    def scheduler(self) -> Scheduler:
        """Get the scheduler.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._scheduler is None:
            msg = "AutomationsPlugin has not been initialized. Access scheduler after app startup."
            raise RuntimeError(msg)
        return self._scheduler

    @property
    def poller(self) -> ResumePoller | None:
        return self._poller

    def on_app_init(self, app_config: AppConfig) -> AppConfig:
        """Wire the engine into the Litestar application.

        This method:
        1. Creates or uses the provided Scheduler
        2. Adds dependency providers for the scheduler and the definition store
        3. Registers startup and shutdown hooks running the resume poller

        Args:
            app_config: The Litestar application configuration.

        Returns:
            The modified application configuration.
        """
        config = self._config
        if config.scheduler is not None:
            self._scheduler = config.scheduler
        else:
            engine_config = config.engine_config or EngineConfig()
            self._scheduler = Scheduler(
                definitions=config.definitions
                or DefinitionRegistry(max_nodes=engine_config.max_nodes, clock=engine_config.clock),
                executions=config.executions or InMemoryExecutionStore(),
                dispatcher=config.dispatcher or ActionDispatcher(),
                config=engine_config,
                leases=config.leases,
                event_bus=config.event_bus,
            )

        def provide_scheduler() -> Scheduler:
            return self._scheduler  # type: ignore[return-value]

        def provide_definitions() -> DefinitionStore:
            return self._scheduler.definitions  # type: ignore[union-attr]

        app_config.dependencies[config.dependency_key_scheduler] = Provide(provide_scheduler, sync_to_thread=False)
        app_config.dependencies[config.dependency_key_definitions] = Provide(
            provide_definitions,
            sync_to_thread=False,
        )

        app_config.on_startup.append(self._on_startup)
        app_config.on_shutdown.append(self._on_shutdown)
        return app_config

    async def _on_startup(self) -> None:
        if self._config.configure_logging:
            configure_logging(log_level=self._config.log_level, json_output=self._config.json_logs)
        if self._config.start_poller:
            self._poller = ResumePoller(self.scheduler, interval=self._config.poll_interval)
            await self._poller.start()
        logger.info("automations.started", worker_id=self.scheduler.worker_id)

    async def _on_shutdown(self) -> None:
        if self._poller is not None:
            await self._poller.stop()
            self._poller = None
        else:
            await self.scheduler.drain()
        logger.info("automations.stopped")
