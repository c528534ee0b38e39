from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_swagger_ui_html

from app.core.config import settings
from app.core.exception_handlers import register_exception_handlers
from app.core.logging import configure_logging
from app.routers import (
    auth,
    documents,
    events,
    families,
    health,
    invites,
    medications,
    messages,
    pay_rates,
    time_entries,
)

configure_logging()

app = FastAPI(
    title="Family Calendar API",
    version="1.0.0",
    description="Families, memberships, invites and family-scoped calendar resources.",
    # The API is proxied under a path prefix at the edge. Swagger needs a fixed openapi URL
    # that includes this prefix; we provide a custom /docs route below.
    docs_url=None,
    root_path=settings.root_path,
)

register_exception_handlers(app)


# Custom Swagger UI that points at the externally reachable OpenAPI URL.
@app.get("/docs", include_in_schema=False)
def swagger_ui():
    prefix = (settings.root_path or "").rstrip("/")
    openapi_url = f"{prefix}{app.openapi_url}"
    return get_swagger_ui_html(openapi_url=openapi_url, title=f"{app.title} - Docs")


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(families.router)
app.include_router(invites.router)
app.include_router(events.router)
app.include_router(medications.router)
app.include_router(documents.router)
app.include_router(messages.router)
app.include_router(time_entries.router)
app.include_router(pay_rates.router)
