"""
Base AsyncService class for the plan services.

Provides lifecycle management, HTTP server, health checks,
and graceful shutdown capabilities.
"""

import asyncio
import signal
import time
from abc import ABC, abstractmethod
from typing import Optional, List

from aiohttp import web
import structlog
import psutil

from .config import ServiceConfig
from .health import HealthChecker
from .metrics import MetricsCollector
from .consumer import KafkaConsumer
from .producer import KafkaProducer


logger = structlog.get_logger(__name__)


class AsyncService(ABC):
    """
    Base class for async services.

    Provides common functionality:
    - HTTP server with health and metrics endpoints
    - Kafka producer/consumer lifecycle
    - Graceful shutdown on SIGTERM/SIGINT

    Subclasses open their clients in ``_startup_hook``, register routes in
    ``_setup_service_routes`` and close clients in ``_shutdown_hook``.
    """

    def __init__(self, config: ServiceConfig, port: Optional[int] = None):
        self.config = config
        self.port = port or self.config.observability.health_port
        self.logger = structlog.get_logger(self.config.service_name).bind(service=self.config.service_name)

        # Core components
        self.app: Optional[web.Application] = None
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

        # Framework components
        self.health_checker = HealthChecker(self.config)
        self.metrics = MetricsCollector(self.config.service_name)

        self.consumers: List[KafkaConsumer] = []
        self.producers: List[KafkaProducer] = []

        self.shutdown_event = asyncio.Event()
        self.metrics_task: Optional[asyncio.Task] = None
        self._stopped = False

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(signum, self._on_signal, signum)
            except (NotImplementedError, RuntimeError):
                # Not available outside the main thread or on some platforms
                self.logger.debug("Signal handler not installed", signal=signum)

    def _on_signal(self, signum: int) -> None:
        self.logger.info("Received shutdown signal", signal=signum)
        self.shutdown_event.set()

    def build_app(self) -> web.Application:
        """Create the web application with framework and service routes."""
        self.app = web.Application(middlewares=[self._metrics_middleware])
        self._setup_routes()
        return self.app

    async def startup(self) -> None:
        """Initialize service components."""
        self.logger.info("Starting service", environment=self.config.environment)

        self.build_app()
        await self._startup_hook()

        for producer in self.producers:
            await producer.start()
        for consumer in self.consumers:
            await consumer.start()

        self.metrics_task = asyncio.create_task(self._update_metrics_periodically())

        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, host="0.0.0.0", port=self.port)
        await self.site.start()

        self._setup_signal_handlers()
        self.logger.info("Service started", port=self.port)

    async def shutdown(self) -> None:
        """Gracefully shutdown service."""
        if self._stopped:
            return
        self._stopped = True
        self.logger.info("Shutting down service")

        # Stop accepting new requests
        if self.site:
            await self.site.stop()

        if self.metrics_task:
            self.metrics_task.cancel()
            try:
                await self.metrics_task
            except asyncio.CancelledError:
                pass

        # Consumers first so nothing new is processed while producers flush
        for consumer in self.consumers:
            await consumer.stop()
        for producer in self.producers:
            await producer.stop()

        await self._shutdown_hook()

        if self.runner:
            await self.runner.cleanup()

        self.shutdown_event.set()
        self.logger.info("Service shutdown complete")

    def _setup_routes(self) -> None:
        """Setup HTTP routes."""
        self.app.router.add_get("/health", self._health_handler)
        self.app.router.add_get("/health/ready", self._readiness_handler)
        self.app.router.add_get("/health/live", self._liveness_handler)
        self.app.router.add_get("/metrics", self._metrics_handler)

        self._setup_service_routes()

    def _setup_service_routes(self) -> None:
        """Setup service-specific HTTP routes. Override in subclasses."""
        pass

    @web.middleware
    async def _metrics_middleware(self, request: web.Request, handler):
        started = time.time()
        status = 500
        try:
            response = await handler(request)
            status = response.status
            return response
        except web.HTTPException as e:
            status = e.status
            raise
        finally:
            resource = request.match_info.route.resource
            endpoint = resource.canonical if resource is not None else "unmatched"
            self.metrics.record_request(request.method, endpoint, str(status), time.time() - started)

    async def _health_handler(self, request: web.Request) -> web.Response:
        health_status = await self.health_checker.check_health()
        return web.json_response(health_status, status=200 if health_status["healthy"] else 503)

    async def _readiness_handler(self, request: web.Request) -> web.Response:
        ready_status = await self.health_checker.check_readiness()
        return web.json_response(ready_status, status=200 if ready_status["ready"] else 503)

    async def _liveness_handler(self, request: web.Request) -> web.Response:
        return web.json_response({"alive": True})

    async def _metrics_handler(self, request: web.Request) -> web.Response:
        return web.Response(
            body=self.metrics.get_metrics(),
            headers={"Content-Type": self.metrics.get_content_type()},
        )

    @abstractmethod
    async def _startup_hook(self) -> None:
        """Service-specific startup logic."""

    @abstractmethod
    async def _shutdown_hook(self) -> None:
        """Service-specific shutdown logic."""

    async def _update_metrics_periodically(self) -> None:
        """Update process and health metrics every 30 seconds."""
        process = psutil.Process()
        while not self.shutdown_event.is_set():
            try:
                self.metrics.update_service_info(
                    version=getattr(self.config, "version", "1.0.0"),
                    environment=self.config.environment,
                )
                health_status = await self.health_checker.check_health()
                self.metrics.set_health_status(health_status["healthy"])
                self.metrics.set_memory_usage(process.memory_info().rss)
            except asyncio.CancelledError:
                break
            except psutil.Error as e:
                self.logger.warning("Failed to update memory metrics", error=str(e))

            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                break

    async def run(self) -> None:
        """Run the service until a shutdown signal arrives."""
        try:
            await self.startup()
            await self.shutdown_event.wait()
        except Exception as e:
            self.logger.error("Service error", error=str(e), exc_info=True)
            raise
        finally:
            await self.shutdown()

    def add_consumer(self, consumer: KafkaConsumer) -> None:
        """Register a Kafka consumer started and stopped with the service."""
        self.consumers.append(consumer)

    def add_producer(self, producer: KafkaProducer) -> None:
        """Register a Kafka producer started and stopped with the service."""
        self.producers.append(producer)
