import logging
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import uvicorn
from fastapi.middleware.cors import CORSMiddleware
from core.config import settings
from core.logging_config import configure_logging
from db.database import async_session_maker, create_db_and_tables
from routers.inventory_transfers import router as inventory_transfers_router
from core.auth import fastapi_users, auth_backend
from contextlib import asynccontextmanager
from schemas.users import UserRead, UserUpdate
from services.exceptions import InventoryTransferError
from services.stock_ledger import ensure_code_sequences

configure_logging(settings)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_db_and_tables()
    async with async_session_maker() as db:
        await ensure_code_sequences(db)
    yield


app = FastAPI(
    title="Branch Inventory Transfers API",
    description="API for requesting, approving and rejecting stock transfers between branches",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InventoryTransferError)
async def inventory_transfer_error_handler(request: Request, exc: InventoryTransferError):
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:])
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": f"{field}: {message}" if field else message},
    )


# Authentication routes (fastapi-users)
app.include_router(fastapi_users.get_auth_router(auth_backend), prefix="/auth/jwt", tags=["auth"],)
app.include_router(fastapi_users.get_users_router(UserRead, UserUpdate), prefix="/users", tags=["users"])

# Inventory transfer routes
app.include_router(inventory_transfers_router, prefix="/inventory-transfers", tags=["inventory-transfers"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
