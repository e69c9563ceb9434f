"""Health endpoints for the load balancer and monitoring."""

from fastapi import APIRouter
from pydantic import BaseModel

router = APIRouter()

PROBE_SITEMAP = (
    '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
    "<url><loc>https://example.com/</loc></url></urlset>"
)
PROBE_PAGE = "<html><body><main><h1>Probe</h1></main></body></html>"


class HealthResponse(BaseModel):
    status: str
    version: str
    checks: dict[str, str]


def _check_parsers() -> str:
    from bs4 import BeautifulSoup

    from sitecrawl.engines.crawler.extractor import HtmlContentExtractor

    loc = BeautifulSoup(PROBE_SITEMAP, "xml").find("loc")
    if loc is None or loc.get_text(strip=True) != "https://example.com/":
        return "unhealthy: sitemap parser returned no <loc>"

    evidence = HtmlContentExtractor.parse(PROBE_PAGE, "https://example.com/")
    if evidence.structure.heading_count.h1 != 1:
        return "unhealthy: page parser returned no headings"
    return "healthy"


@router.get("", response_model=HealthResponse, include_in_schema=False)
async def health_check() -> HealthResponse:
    from sitecrawl.core.config import get_settings
    settings = get_settings()

    checks: dict[str, str] = {}

    try:
        checks["parser"] = _check_parsers()
    except Exception as e:
        checks["parser"] = f"unhealthy: {e}"

    # Dispatch only needs a broker URL; queueing itself is checked by the worker
    try:
        from sitecrawl.workers.celery_app import celery_app
        checks["celery"] = "configured" if celery_app.conf.broker_url else "unhealthy: no broker"
    except Exception as e:
        checks["celery"] = f"unhealthy: {e}"

    overall = "healthy" if all("unhealthy" not in v for v in checks.values()) else "degraded"
    return HealthResponse(status=overall, version=settings.APP_VERSION, checks=checks)


@router.get("/ready", include_in_schema=False)
async def readiness() -> dict:
    """Kubernetes readiness probe."""
    return {"ready": True}


@router.get("/live", include_in_schema=False)
async def liveness() -> dict:
    """Kubernetes liveness probe."""
    return {"alive": True}
