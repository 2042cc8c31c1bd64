"""Embedded read-only status API for the instrument session."""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from aiohttp import web

from .config import Config, config_to_dict
from .session import InstrumentSession


_LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class StatusRuntime:
	"""Runtime information about the status server."""

	host: str
	port: int


class StatusServer:
	"""Serve instrument state and configuration as JSON."""

	def __init__(
		self,
		session: InstrumentSession,
		config: Config,
		host: str,
		port: int,
	) -> None:
		self._session = session
		self._config = config
		self._host = host
		self._port = port

		self._thread: Optional[threading.Thread] = None
		self._loop: Optional[asyncio.AbstractEventLoop] = None
		self._runner: Optional[web.AppRunner] = None
		self._site: Optional[web.TCPSite] = None
		self._bound_port: Optional[int] = None

		self._started = threading.Event()
		self._stopped = threading.Event()
		self._start_error: Optional[Exception] = None

	# ------------------------------------------------------------------
	# Public control surface
	# ------------------------------------------------------------------

	def start(self) -> StatusRuntime:
		if self._thread is not None:
			raise RuntimeError("Status server already started")

		self._thread = threading.Thread(target=self._thread_main, name="StatusServer", daemon=True)
		self._thread.start()
		self._started.wait()

		if self._start_error is not None:
			raise RuntimeError("Failed to start status server") from self._start_error

		assert self._bound_port is not None
		return StatusRuntime(host=self._host, port=self._bound_port)

	def stop(self) -> None:
		if self._loop is None:
			return

		loop = self._loop
		loop.call_soon_threadsafe(loop.stop)
		if self._thread is not None:
			self._thread.join(timeout=5)
		self._stopped.wait(timeout=5)

	# ------------------------------------------------------------------
	# Thread + event loop setup
	# ------------------------------------------------------------------

	def _thread_main(self) -> None:
		loop = asyncio.new_event_loop()
		asyncio.set_event_loop(loop)
		self._loop = loop

		try:
			app = web.Application(middlewares=[self._json_error_middleware])
			self._configure_routes(app)
			runner = web.AppRunner(app)
			loop.run_until_complete(runner.setup())
			self._runner = runner

			site = web.TCPSite(runner, self._host, self._port)
			loop.run_until_complete(site.start())
			self._site = site

			sockets = getattr(site._server, "sockets", [])  # type: ignore[attr-defined]
			if sockets:
				self._bound_port = sockets[0].getsockname()[1]
			else:  # pragma: no cover
				raise RuntimeError("Status server failed to bind socket")

			self._started.set()
			_LOG.info("Status API available at http://%s:%s/api/status", self._host, self._bound_port)

			loop.run_forever()
		except Exception as exc:  # pragma: no cover - best effort logging
			self._start_error = exc
			_LOG.exception("Status server failed to start")
			self._started.set()
		finally:
			try:
				if self._runner is not None:
					loop.run_until_complete(self._runner.cleanup())
			finally:
				self._stopped.set()
				asyncio.set_event_loop(None)
				loop.close()

	def _configure_routes(self, app: web.Application) -> None:
		app.router.add_get("/api/status", self._handle_status)
		app.router.add_get("/api/config", self._handle_config)

	# ------------------------------------------------------------------
	# Request handlers
	# ------------------------------------------------------------------

	async def _handle_status(self, _request: web.Request) -> web.Response:
		payload = await asyncio.to_thread(self._read_status)
		return web.json_response(payload)

	async def _handle_config(self, _request: web.Request) -> web.Response:
		return web.json_response(config_to_dict(self._config))

	# ------------------------------------------------------------------
	# Helpers
	# ------------------------------------------------------------------

	def _read_status(self) -> Dict[str, Any]:
		with self._session.exclusive():
			status = self._session.state.describe()
		status["backend"] = self._session.backend.name
		status["hardware_failure_policy"] = self._session.hardware.policy.value
		return status

	@staticmethod
	@web.middleware
	async def _json_error_middleware(request: web.Request, handler: Callable[[web.Request], Any]) -> web.StreamResponse:
		try:
			return await handler(request)
		except web.HTTPException as exc:
			if exc.content_type == "application/json":
				raise
			payload = {"error": exc.reason or exc.text or exc.status}
			return web.json_response(payload, status=exc.status)
