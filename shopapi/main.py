import logging

from fastapi import FastAPI

from shopscrape.config import get_settings

from .routers import search

settings = get_settings()
logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(title="ShopSavvy Search API", version="0.1.0")


@app.get("/health")
def healthcheck():
    return {"status": "ok", "env": settings.env, "cache": "supabase" if settings.supabase_configured else "memory"}


app.include_router(search.router, tags=["search"])
