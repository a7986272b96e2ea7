import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from logging_config import configure_logging
from settings import settings

configure_logging()
logger = logging.getLogger(__name__)
settings.warn_if_default_auth_secret()

# 1. Setup App
app = FastAPI(
    title="StartAI Backend",
    description="Two-pass (analysis + plan) goal assistant with per-user chat history.",
    version="1.0.0",
)

# 2. Setup CORS
origins = settings.get_cors_origins()
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials="*" not in origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 3. Import Models BEFORE create_all to ensure they are registered in Base.metadata
from database import Base, engine
from models import db_models  # noqa: F401
Base.metadata.create_all(bind=engine)

# 4. Include Routers
from routers import auth, chat, chats
app.include_router(auth.router)
app.include_router(chat.router)
app.include_router(chats.router)


@app.get("/")
def read_root():
    return {"status": "StartAI backend is running"}


@app.get("/health")
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
