from __future__ import annotations
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


def error_body(detail) -> dict:
	if isinstance(detail, dict):
		body = {"success": False, **detail}
		body.setdefault("error", "Request failed")
		return body
	return {"success": False, "error": str(detail)}


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
	if exc.status_code >= 500:
		logger.error("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.detail)
	else:
		logger.debug("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.detail)
	return JSONResponse(
		status_code=exc.status_code,
		content=error_body(exc.detail),
		headers=getattr(exc, "headers", None),
	)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
	return JSONResponse(
		status_code=400,
		content={"success": False, "error": "Invalid request", "details": jsonable_encoder(exc.errors())},
	)


async def unhandled_exception_handler(request: Request, exc: Exception):
	logger.exception("Unhandled error on %s %s", request.method, request.url.path)
	return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


def register_exception_handlers(app: FastAPI) -> None:
	app.add_exception_handler(StarletteHTTPException, http_exception_handler)
	app.add_exception_handler(HTTPException, http_exception_handler)
	app.add_exception_handler(RequestValidationError, validation_exception_handler)
	app.add_exception_handler(Exception, unhandled_exception_handler)
