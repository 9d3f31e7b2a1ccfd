import logging

from fastapi import FastAPI

from .api.routes import router
from .config import get_settings

logging.basicConfig(
    level=get_settings().log_level,
    format="[%(asctime)s] %(levelname)s %(name)s - %(message)s",
)

app = FastAPI(
    title="NutriBot API",
    version="0.1.0",
    description="Nutrition coaching backend: profiles, dashboard and a streaming AI chat relay.",
)

app.include_router(router, prefix="/api")


@app.get("/")
def root() -> dict:
    return {"message": "NutriBot API", "docs_url": "/docs"}
