"""Litestar plugin for the HIL task engine.

This module provides the HilPlugin, which wires the template registry, the task
state engine and the background workers into a Litestar application and
mounts the REST API.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from litestar.di import Provide
from litestar.plugins import InitPluginProtocol

from litestar_hil.config import EngineConfig, ResumeSignalConfig, SweepConfig
from litestar_hil.engine.registry import TemplateRegistry
from litestar_hil.engine.signals import ResumeSignalDispatcher
from litestar_hil.engine.state_machine import TaskStateEngine
from litestar_hil.engine.workers import ResumeSignalWorker, SLASweeper

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from datetime import datetime

    import httpx
    from litestar.config.app import AppConfig
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from litestar_hil.core.definition import WorkflowTemplate

__all__ = ["HilPlugin", "HilPluginConfig"]


@dataclass
class HilPluginConfig:
    """Configuration for the HilPlugin.

    Attributes:
        session_maker: Factory for database sessions. Create it with
            ``expire_on_commit=False``; the engine returns committed rows.
        templates: Workflow templates registered on startup.
        registry: Optional pre-configured TemplateRegistry. If not provided,
            a new one will be created.
        engine_config: Behavioural settings of the task state engine.
        sweep: Settings of the SLA sweeper background task.
        signals: Settings of the resume-signal webhook and its worker.
        clock: Source of the current time. Defaults to UTC wall-clock time.
        http_client: HTTP client resume signals are posted with.
        dependency_key_engine: The key used for dependency injection of the
            TaskStateEngine. The API controllers expect the default.
        dependency_key_registry: The key used for dependency injection of the
            TemplateRegistry. The API controllers expect the default.
        enable_api: Whether to enable the REST API endpoints. Defaults to True.
        api_path_prefix: URL path prefix for all API endpoints.
        api_guards: List of Litestar guards to apply to all API endpoints.
        api_tags: OpenAPI tags to apply to the API endpoints.
        include_api_in_schema: Whether to include API endpoints in the OpenAPI schema.
    """

    session_maker: async_sessionmaker[AsyncSession] | None = None
    templates: Sequence[WorkflowTemplate] = ()
    registry: TemplateRegistry | None = None
    engine_config: EngineConfig = field(default_factory=EngineConfig)
    sweep: SweepConfig = field(default_factory=SweepConfig)
    signals: ResumeSignalConfig = field(default_factory=ResumeSignalConfig)
    clock: Callable[[], datetime] | None = None
    http_client: httpx.AsyncClient | None = None
    dependency_key_engine: str = "hil_engine"
    dependency_key_registry: str = "hil_registry"
    enable_api: bool = True
    api_path_prefix: str = "/hil"
    api_guards: list[Any] = field(default_factory=list)
    api_tags: list[str] = field(default_factory=lambda: ["HIL"])
    include_api_in_schema: bool = True


class HilPlugin(InitPluginProtocol):
    """Litestar plugin for the HIL task engine.

    Provides dependency injection for the TemplateRegistry and the
    TaskStateEngine, runs the SLA sweeper and the resume-signal worker for the
    lifetime of the application, and mounts the REST API.

    Example:
        Basic usage with the builtin templates::

            from litestar import Litestar
            from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

            from litestar_hil import HilPlugin, HilPluginConfig, ResumeSignalConfig
            from litestar_hil.templates import BUILTIN_TEMPLATES

            engine = create_async_engine("postgresql+asyncpg://localhost/hil")
            session_maker = async_sessionmaker(engine, expire_on_commit=False)

            app = Litestar(
                plugins=[
                    HilPlugin(
                        config=HilPluginConfig(
                            session_maker=session_maker,
                            templates=BUILTIN_TEMPLATES,
                            signals=ResumeSignalConfig(url="https://orchestrator.internal/resume"),
                        )
                    )
                ]
            )

        Using the engine in a route handler::

            @post("/intake/{workflow_id:uuid}")
            async def intake(workflow_id: UUID, hil_engine: TaskStateEngine) -> dict:
                tasks = await hil_engine.activate_workflow(workflow_id)
                return {"task_ids": [str(task.id) for task in tasks]}
    """

    __slots__ = ("_config", "_engine", "_registry", "_signal_dispatcher", "_workers")

    def __init__(self, config: HilPluginConfig | None = None) -> None:
        """Initialize the plugin.

        Args:
            config: Optional configuration for the plugin.
        """
        self._config = config or HilPluginConfig()
        self._registry: TemplateRegistry | None = None
        self._engine: TaskStateEngine | None = None
        self._signal_dispatcher: ResumeSignalDispatcher | None = None
        self._workers: list[SLASweeper | ResumeSignalWorker] = []

    @property
    def config(self) -> HilPluginConfig:
        return self._config

    @property
    def registry(self) -> TemplateRegistry:
        """Get the template registry.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._registry is None:
            msg = "HilPlugin has not been initialized. Access registry after app startup."
            raise RuntimeError(msg)
        return self._registry

    @property
    def engine(self) -> TaskStateEngine:
        """Get the task state engine.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._engine is None:
            msg = "HilPlugin has not been initialized. Access engine after app startup."
            raise RuntimeError(msg)
        return self._engine

    @property
    def signal_dispatcher(self) -> ResumeSignalDispatcher:
        """Get the resume-signal dispatcher.

        Raises:
            RuntimeError: If accessed before plugin initialization.
        """
        if self._signal_dispatcher is None:
            msg = "HilPlugin has not been initialized. Access signal_dispatcher after app startup."
            raise RuntimeError(msg)
        return self._signal_dispatcher

    def on_app_init(self, app_config: AppConfig) -> AppConfig:
        """Initialize the plugin when the Litestar app starts.

        This method:
        1. Creates or uses the provided TemplateRegistry and registers the templates
        2. Creates the TaskStateEngine and the resume-signal dispatcher
        3. Adds dependency providers to the app config
        4. Schedules the background workers on startup and shutdown
        5. Optionally registers the REST API controllers if enable_api=True

        Args:
            app_config: The Litestar application configuration.

        Returns:
            The modified application configuration.

        Raises:
            ValueError: If no session maker is configured.
        """
        config = self._config
        if config.session_maker is None:
            msg = "HilPluginConfig.session_maker is required"
            raise ValueError(msg)

        self._registry = config.registry or TemplateRegistry()
        for template in config.templates:
            self._registry.register(template)

        self._engine = TaskStateEngine(
            config.session_maker,
            self._registry,
            config=config.engine_config,
            clock=config.clock,
            sweep_batch_size=config.sweep.batch_size,
        )
        self._signal_dispatcher = ResumeSignalDispatcher(self._engine, config.signals, client=config.http_client)

        self._workers = []
        if config.sweep.enabled:
            self._workers.append(SLASweeper(self._engine.sla, config.sweep.interval_seconds))
        if config.signals.enabled:
            signal_worker = ResumeSignalWorker(self._signal_dispatcher, config.signals.poll_interval_seconds)
            self._engine.on_signal_enqueued = signal_worker.wake
            self._workers.append(signal_worker)

        def provide_registry() -> TemplateRegistry:
            return self._registry  # type: ignore[return-value]

        def provide_engine() -> TaskStateEngine:
            return self._engine  # type: ignore[return-value]

        app_config.dependencies[config.dependency_key_registry] = Provide(provide_registry, sync_to_thread=False)
        app_config.dependencies[config.dependency_key_engine] = Provide(provide_engine, sync_to_thread=False)

        app_config.on_startup.append(self._start_workers)
        app_config.on_shutdown.append(self._stop_workers)

        if config.enable_api:
            from litestar import Router

            from litestar_hil.web import CONTROLLERS
            from litestar_hil.web.exceptions import exception_handlers

            hil_router = Router(
                path=config.api_path_prefix,
                route_handlers=CONTROLLERS,
                guards=config.api_guards,
                tags=config.api_tags,
                include_in_schema=config.include_api_in_schema,
            )
            app_config.route_handlers.append(hil_router)
            app_config.exception_handlers.update(exception_handlers)  # type: ignore[arg-type]

        return app_config

    async def _start_workers(self) -> None:
        for worker in self._workers:
            worker.start()

    async def _stop_workers(self) -> None:
        for worker in self._workers:
            await worker.stop()
