import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from eamwatch.api.deps import close_dispatcher
from eamwatch.api.routes.fragments import router as fragments_router
from eamwatch.api.routes.messages import router as messages_router
from eamwatch.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # Let in-flight evaluations finish so no message is left half-merged
    await close_dispatcher()


app = FastAPI(
    title="eamwatch API",
    description="Structured radio message detection over transcribed fragments",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:8501",
    ],
    allow_origin_regex=r"http://localhost:\d+",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(fragments_router)
app.include_router(messages_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}
