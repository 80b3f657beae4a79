from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from health_agent.config import get_services
from health_agent.core.logging_utils import log_event

load_dotenv()


@asynccontextmanager
async def lifespan(app: FastAPI):
    log_event(component="app", event="startup")
    services = get_services()  # Trigger loading
    yield
    await services["controller"].close()
    log_event(component="app", event="shutdown")


def create_app() -> FastAPI:
    app = FastAPI(
        title="CareKeep API",
        description="Health education assistant with emergency escalation and safety filtering",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, specify the frontend origin
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return app
