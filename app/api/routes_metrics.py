from fastapi import APIRouter, Response

from app import metrics
from app.api.dependencies import AdminDep, DbDep
from app.services.reconciliation_service import ReconciliationService

try:  # pragma: no cover
    from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
    _PROM_AVAILABLE = True
except Exception:  # noqa: BLE001
    _PROM_AVAILABLE = False

router = APIRouter()


@router.get("/metrics")
def metrics_endpoint(_admin: AdminDep, db: DbDep) -> Response:
    if not _PROM_AVAILABLE:
        return Response("prometheus client not installed", media_type="text/plain", status_code=503)
    # Counters are incremented at event points; the backlog gauge is refreshed per scrape
    metrics.set_failed_deliveries(ReconciliationService(db).unresolved_webhook_failures())
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
