from typing import Any, Dict

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .dependencies import get_observer
from ..observability import PrometheusObserver

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("")
def prometheus_metrics(observer: PrometheusObserver = Depends(get_observer)) -> Response:
    return Response(content=generate_latest(observer.registry), media_type=CONTENT_TYPE_LATEST)


@router.get("/recommendation")
def recommendation_metrics(observer: PrometheusObserver = Depends(get_observer)) -> Dict[str, Any]:
    return observer.snapshot()
