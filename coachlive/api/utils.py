import inspect
import sys
import traceback
from functools import lru_cache
from os import environ
from pathlib import Path
from typing import Any, Literal
from uuid import uuid4

from fastapi import FastAPI
from fastapi.responses import ORJSONResponse
from loguru import logger
from pydantic import BaseModel, Field

from coachlive.utils.app_errors import AppErrorCode

E_INTERNAL = AppErrorCode.E_INTERNAL_ERROR.value
E_INVALID_PARAMS = AppErrorCode.E_INVALID_PARAMS.value


def format_error(ex: BaseException) -> str:
    return "".join(traceback.TracebackException.from_exception(ex).format())


class ApiResponse(BaseModel):
    version: str | None = Field(default_factory=lambda: environ.get("BUILD_COMMIT", "dev"))


class ApiSuccess(ApiResponse):
    success: Literal[True] = True
    results: Any = "OK"


class ApiFailure(ApiResponse):
    success: Literal[False] = False
    errcode: str = E_INTERNAL
    erresid: str = Field(default_factory=lambda: uuid4().hex[:10])
    errmesg: str = "We are sorry, an error occurred."


def api_failure(
    errcode: str | None = None,
    errmesg: Exception | str | None = None,
    *,
    trace: Any = None,
) -> ApiFailure:
    """Build an ApiFailure and log it together with the call site."""
    if not errcode:
        errcode = E_INTERNAL

    if isinstance(errmesg, Exception):
        errmesg = format_error(errmesg)

    if not errmesg:
        errmesg = str(ApiFailure.model_fields["errmesg"].default)

    failure = ApiFailure(errcode=errcode, errmesg=errmesg)

    caller_frame = inspect.stack()[1]
    module = inspect.getmodule(caller_frame.frame)
    module_name = module.__name__ if module and getattr(module, "__name__", None) else caller_frame.filename
    caller_info = f"{module_name}:{caller_frame.function}:{caller_frame.lineno}"

    logger.warning(f"{failure.errcode} {failure.erresid}\n{failure.errmesg} caller={caller_info} trace={trace}")

    return failure


def make_response(results: ApiSuccess | ApiFailure, *, status_code: int | None = None) -> ORJSONResponse:
    if status_code is None:
        if isinstance(results, ApiFailure):
            status_code = 500 if results.errcode == E_INTERNAL else 400
        else:
            status_code = 200

    return ORJSONResponse(status_code=status_code, content=results.model_dump(mode="json"))


def get_all_routes_info(app: FastAPI) -> list[dict[str, Any]]:
    routes_info = []

    for route in app.routes:
        methods = getattr(route, "methods", None) or {"WS"}
        endpoint = getattr(route, "endpoint", None)
        routes_info.append(
            {
                "methods": sorted(methods),
                "path": getattr(route, "path", str(route)),
                "endpoint": getattr(endpoint, "__name__", str(endpoint)),
            }
        )

    return routes_info


def log_routes(app: FastAPI) -> None:
    for route_info in get_all_routes_info(app):
        methods = ",".join(route_info["methods"])
        logger.info("Loaded route: {:<12} {:<50} {}", methods, route_info["path"], route_info["endpoint"])


@lru_cache
def get_worker_info() -> tuple[str, str, str]:
    project_root = Path(__file__).parent.parent.parent
    worker_name = environ.get("WORKER_NAME", project_root.name)

    parts = environ.get("BUILD_COMMIT", "").split("-")
    commit_id = parts[1] if len(parts) > 1 else "dev"

    return worker_name, commit_id, uuid4().hex[:8]


def init_logger(level: str | None = None, serialize: bool | None = None) -> None:
    """Replace loguru's default sink with the service format."""
    from coachlive.app_config import get_app_environ_config

    cfg = get_app_environ_config()
    logger.remove()

    worker_name, commit_id, _ = get_worker_info()
    logger_level = level or ("DEBUG" if cfg.DEBUG else cfg.LOG_LEVEL)

    if serialize if serialize is not None else cfg.LOG_JSON:
        logger.add(sys.stderr, level=logger_level, serialize=True)
        return

    if cfg.DEBUG:
        logger_format = (
            f"<yellow>{worker_name}:{commit_id}</yellow> | "
            "<green>{time:MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        )
    else:
        logger_format = (
            f"{worker_name}:{commit_id} | "
            "{time:MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{name}:{function}:{line} | "
            "{message}"
        )
    logger.add(sys.stderr, level=logger_level, format=logger_format)
