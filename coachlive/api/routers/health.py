from fastapi import APIRouter, Request

from coachlive import __version__
from coachlive.api.utils import ApiSuccess, get_worker_info
from coachlive.app_config import get_app_environ_config

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health(request: Request) -> ApiSuccess:
    cfg = get_app_environ_config()
    worker_name, commit_id, instance_id = get_worker_info()
    return ApiSuccess(
        results={
            "status": "ok",
            "app_version": __version__,
            "worker": worker_name,
            "commit": commit_id,
            "instance": instance_id,
            "demo_mode": cfg.DEMO_MODE,
            "storage_backend": cfg.STORAGE_BACKEND,
            "event_transport": cfg.EVENT_TRANSPORT,
            "ready": getattr(request.app.state, "coordinator", None) is not None,
        }
    )
