from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import Response

from .auth import TokenVerifier
from .dispatcher import Dispatcher
from .routes import build_routes
from .services import Services
from .settings import Settings, load_settings

logger = logging.getLogger(__name__)

METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
	"""Build the API. With no arguments, settings come from the environment.

	Run with ``uvicorn essai_api.main:create_app --factory``.
	"""
	settings = settings or load_settings()
	logging.basicConfig(level=settings.log_level.upper())
	services = services or Services.from_settings(settings)
	dispatcher = Dispatcher(
		build_routes(),
		TokenVerifier.from_settings(settings),
		services,
		prefix=settings.api_prefix,
	)

	app = FastAPI(title="Essai Assessment API", version=settings.app_version)
	app.state.services = services
	app.state.dispatcher = dispatcher

	@app.on_event("startup")
	async def startup_event():
		services.init()

	@app.on_event("shutdown")
	async def shutdown_event():
		await services.shutdown()

	@app.api_route("/{full_path:path}", methods=METHODS, include_in_schema=False)
	async def web_api(full_path: str, request: Request):
		body = await request.body()
		result = await dispatcher.dispatch(
			request.method,
			request.url.path,
			headers=dict(request.headers),
			query=dict(request.query_params),
			body=body,
		)
		return Response(content=result.body, status_code=result.status, headers=result.headers)

	return app
