"""
Roast Engine - API Application

FastAPI front end of the roast pipeline: answers roast requests from the
tiered cache or queues screenshot jobs for the worker (see worker.py), and
serves roast records, health and cache maintenance endpoints.
"""

from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables before settings are read
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from analyzer.pipeline import RoastService
from config import configure_logging
from core.cache import close_cache, get_cache
from core.queue import KombuTransport
from core.rate_limit import create_rate_limiter
from routes import router
from utils.clients.records import create_record_store

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    cache = get_cache()
    records = create_record_store()
    transport = KombuTransport()
    rate_limiter = create_rate_limiter()

    app.state.cache = cache
    app.state.records = records
    app.state.roast_service = RoastService(cache, records, transport, rate_limiter=rate_limiter)

    yield

    await transport.close()
    await rate_limiter.close()
    await records.close()
    await close_cache()


# Initialize FastAPI app
app = FastAPI(title="Roast Engine", lifespan=lifespan)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include all routes from routes.py
app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, timeout_keep_alive=60)
