from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .routers import timeline as timeline_router

app = FastAPI(
    title="xctimeline",
    version="0.1.0",
    description="Playback timelines rebuilt from UI test result bundles.",
)

# =========================
# CORS
# =========================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# =========================
# Routers registration
# =========================
app.include_router(timeline_router.router, prefix=settings.api_prefix)


# =========================
# Health endpoint
# =========================
@app.get("/health")
def health():
    return {"status": "ok", "service": settings.backend_name}
