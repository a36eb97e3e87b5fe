from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.routes import router
from utils.logging_setup import configure_logging


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging()
    yield


app = FastAPI(
    title="TDV Query Adapter API",
    version="0.1.0",
    description="Row-capped query execution against TIBCO Data Virtualization over ODBC",
    lifespan=lifespan,
)
app.include_router(router)
