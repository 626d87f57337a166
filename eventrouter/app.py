"""Application bootstrap for eventrouter.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s client → object resolver
              → registration directory → HTTP client → dispatch queue
              → router → informer (initial sync) → REST probes

The ingestion loop is the heart of the process: when it ends, on a
shutdown signal or a fatal error, the components are stopped in reverse
order and the process exits non-zero so the supervisor restarts it.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from eventrouter.collector.informer import CacheSyncError, EventInformer
from eventrouter.config import load_config
from eventrouter.models.config import EventRouterConfig
from eventrouter.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import httpx
    import structlog

    from eventrouter.notifications.queue import DispatchQueue

_SHUTDOWN_GRACE_SECONDS = 45
SERVICE_NAME = "EventRouter"


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class EventRouterApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started (or already stopped)
    is safe.
    """

    def __init__(self, config: EventRouterConfig | None = None) -> None:
        self.config = config

        self._api_client: object | None = None
        self._resolver: object | None = None
        self._directory: object | None = None
        self._http_client: httpx.AsyncClient | None = None
        self._queue: DispatchQueue | None = None
        self._router: object | None = None
        self._informer: EventInformer | None = None
        self._rest_server: object | None = None

        self._ingestion_task: asyncio.Task[None] | None = None
        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises:
            _ComponentError: a mandatory component cannot start.
            CacheSyncError:  the initial event list did not complete in time.
        """
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level, service=SERVICE_NAME)
        self._log = get_logger("app")

        # --- 3. Kubernetes client ----------------------------------------
        await self._start_k8s_client()

        # --- 4. Object resolver + registration directory ------------------
        await self._start_resolver()

        # --- 5. Notification HTTP client + dispatch queue -----------------
        await self._start_dispatch_queue()

        # --- 6. Router + informer (initial sync is fatal on timeout) ------
        await self._start_router()
        await self._start_informer()

        # --- 7. REST probes ----------------------------------------------
        await self._start_rest()

        self._running = True
        self._log.info(
            f"Starting {SERVICE_NAME}",
            version=_eventrouter_version(),
            debug=self.config.debug,
            resync_interval=self.config.watch.resync_interval,
            throttle_period=self.config.watch.throttle_period,
            namespace=self.config.watch.namespace,
            queue_max_capacity=self.config.notifications.queue_max_capacity,
            queue_worker_threads=self.config.notifications.queue_worker_threads,
        )

    async def _start_k8s_client(self) -> None:
        """Initialise the kubernetes-asyncio client from in-cluster config or kubeconfig."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting k8s client")
        try:
            import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            kubeconfig = self.config.kube.kubeconfig
            if kubeconfig:
                await k8s_config.load_kube_config(config_file=kubeconfig)
                self._log.info("k8s client configured from kubeconfig", path=kubeconfig)
            else:
                try:
                    k8s_config.load_incluster_config()
                    self._log.info("k8s client configured from in-cluster service account")
                except k8s_config.ConfigException:
                    await k8s_config.load_kube_config()
                    self._log.info("k8s client configured from kubeconfig")

            self._api_client = k8s_client.ApiClient()
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    async def _start_resolver(self) -> None:
        """Build the generic object resolver and the registration directory."""
        assert self._log is not None
        assert self.config is not None
        try:
            from eventrouter.objects import KubeClusterClient, ObjectResolver
            from eventrouter.registrations import RegistrationDirectory, StaticRegistrationDirectory

            resolver = ObjectResolver(
                KubeClusterClient(self._api_client),
                max_depth=self.config.resolver.max_owner_depth,
            )
            url = self.config.notifications.notification_url
            if url:
                self._directory = StaticRegistrationDirectory(url)
                self._log.info("registration directory disabled; using fixed notification url", url=url)
            else:
                self._directory = RegistrationDirectory(
                    resolver,
                    namespace=self.config.notifications.registration_namespace,
                )
                self._log.info("registration directory started")
            self._resolver = resolver
        except Exception as exc:
            raise _ComponentError("resolver", exc) from exc

    async def _start_dispatch_queue(self) -> None:
        """Create the shared HTTP client and start the notification workers."""
        assert self._log is not None
        assert self.config is not None
        try:
            from eventrouter.notifications import DispatchQueue, WebhookNotifier, build_http_client

            cfg = self.config.notifications
            self._http_client = build_http_client(
                timeout=cfg.delivery_timeout,
                insecure=self.config.kube.insecure,
                trace=self.config.debug,
            )
            notifier = WebhookNotifier(self._http_client)
            queue = DispatchQueue(
                deliver_fn=notifier.deliver,
                max_capacity=cfg.queue_max_capacity,
                worker_threads=cfg.queue_worker_threads,
                job_timeout=cfg.delivery_timeout + 5,
            )
            await queue.start()
            self._queue = queue
        except Exception as exc:
            raise _ComponentError("dispatch_queue", exc) from exc

    async def _start_router(self) -> None:
        assert self._log is not None
        assert self.config is not None
        try:
            from eventrouter.objects import AdmissionFilter
            from eventrouter.router import EventRouter, NotificationPusher

            pusher = NotificationPusher(
                resolver=self._resolver,  # type: ignore[arg-type]
                directory=self._directory,  # type: ignore[arg-type]
                queue=self._queue,  # type: ignore[arg-type]
                timeout=self.config.watch.event_timeout,
            )
            self._router = EventRouter(
                handler=pusher,
                admission=AdmissionFilter.from_config(self.config.admission),
                throttle_period=self.config.watch.throttle_period,
            )
            self._log.info("event router started")
        except Exception as exc:
            raise _ComponentError("router", exc) from exc

    async def _start_informer(self) -> None:
        """Prime the event cache, then run the watch loop as the ingestion task.

        A sync timeout propagates as CacheSyncError: running against an
        empty cache is not allowed.
        """
        assert self._log is not None
        assert self.config is not None
        try:
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            from eventrouter.collector import KubeEventSource

            source = KubeEventSource(
                k8s_client.CoreV1Api(self._api_client),
                namespace=self.config.watch.namespace,
            )
            informer = EventInformer(
                source=source,
                handler=self._router,  # type: ignore[arg-type]
                resync_interval=self.config.watch.resync_interval,
                sync_timeout=self.config.watch.sync_timeout,
            )
        except Exception as exc:
            raise _ComponentError("informer", exc) from exc

        self._informer = informer
        await informer.sync()
        self._ingestion_task = asyncio.create_task(informer.run(), name="event-informer")

    async def _start_rest(self) -> None:
        """Start the uvicorn probe server; failure is non-fatal."""
        assert self._log is not None
        assert self.config is not None
        if self.config.api.port == 0:
            self._log.info("rest api disabled (api_port=0)")
            return
        try:
            import uvicorn  # type: ignore[import-untyped]

            from eventrouter.api import build_app

            fastapi_app = build_app(informer=self._informer, queue=self._queue)
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            self._log.warning("rest api failed to start; probes unavailable", error=str(exc))
            self._rest_server = None

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    async def wait(self) -> None:
        """Block until the ingestion loop ends (shutdown or failure)."""
        if self._ingestion_task is None:
            return
        try:
            await self._ingestion_task
        except asyncio.CancelledError:
            if not self._ingestion_task.cancelled():
                raise

    def request_shutdown(self) -> None:
        """Stop the ingestion loop; ``wait()`` then returns."""
        if self._ingestion_task is not None and not self._ingestion_task.done():
            self._ingestion_task.cancel()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order.

        The dispatch queue is drained, not cancelled: notifications already
        underway finish or hit their own timeout.
        """
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        self._running = False

        self.request_shutdown()
        if self._ingestion_task is not None:
            await asyncio.gather(self._ingestion_task, return_exceptions=True)
            self._ingestion_task = None

        if self._rest_server is not None:
            self._rest_server.should_exit = True  # type: ignore[attr-defined]
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        await self._stop_component("dispatch_queue", self._queue)
        await self._close("http_client", self._http_client)
        await self._close("k8s_client", self._api_client)

        log.warning(f"{SERVICE_NAME} done")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))

    async def _close(self, name: str, client: object | None) -> None:
        if client is None:
            return
        log = self._log or get_logger("app")
        close_fn = getattr(client, "aclose", None) or getattr(client, "close", None)
        if close_fn is None:
            return
        try:
            await close_fn()
        except Exception as exc:
            log.debug("client close raised (non-fatal)", component=name, error=str(exc))


def _eventrouter_version() -> str:
    from eventrouter import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main(config: EventRouterConfig | None = None) -> None:
    """Run until the ingestion loop ends, then exit non-zero.

    The process is meant to be restarted by its supervisor; it never exits
    with status 0.
    """
    app = EventRouterApp(config)
    loop = asyncio.get_running_loop()

    def _request_shutdown(sig: signal.Signals) -> None:
        get_logger("app").warning(f"Signal ({sig.name}) detected, shutting down")
        app.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown, sig)

    try:
        await app.start()
        await app.wait()
    except _ComponentError as exc:
        get_logger("app").critical("fatal startup error", component=exc.component, error=str(exc.cause))
    except CacheSyncError as exc:
        get_logger("app").critical("fatal startup error", component="informer", error=str(exc))
    except Exception as exc:
        get_logger("app").critical("ingestion loop failed", error=str(exc), exc_info=True)
    finally:
        await app.stop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)
    raise SystemExit(1)
