from fastapi import FastAPI
from pcapilot.api.routes import allocations
from pcapilot.core.logging import configure_logging

configure_logging()

app = FastAPI(title="PCA Pilot API", version="0.1.0")

app.include_router(allocations.router, prefix="/api/v1")


@app.get("/health")
def health_check():
    return {"status": "ok"}
