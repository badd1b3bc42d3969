import logging

from fastapi import FastAPI
from linkpost.config import settings
from linkpost.deps import init_db
from linkpost.errors import ApiError, api_error_handler, catch_unexpected_errors

# Routers
from linkpost.routers import accounts, auth_linkedin, debug, n8n, posts, scheduler_api

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="LinkPost API", version="0.1.0")

app.add_exception_handler(ApiError, api_error_handler)
app.middleware("http")(catch_unexpected_errors)

@app.on_event("startup")
def _startup():
    settings.validate()
    init_db()
    logger.info("LinkPost API started (env=%s)", settings.app_env)

@app.get("/")
def root():
    return {"message": "LinkPost API is running!"}

# Mount routes
app.include_router(auth_linkedin.router)      # /api/auth/linkedin/*
app.include_router(accounts.router)           # /api/accounts/*
app.include_router(posts.router)              # /api/posts/*
app.include_router(n8n.router)                # /api/n8n/*
app.include_router(debug.router)              # /api/debug/*
app.include_router(scheduler_api.router)      # /scheduler/*
