import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.database import engine, Base

# Import every model so create_all sees the full schema
from app.models.user import User  # noqa: F401
from app.models.voucher import Voucher, VoucherUsage, UserVoucher  # noqa: F401
from app.models.gift_code import GiftCode, GiftCodeUsage  # noqa: F401

from app.api.profile import router as profile_router
from app.api.rewards import router as rewards_router
from app.api.giftcode import router as giftcode_router
from app.api.voucher import router as voucher_router

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

ENV = os.getenv("ENV", "dev")

app = FastAPI(
    title="StoryVerse Rewards API",
    docs_url=None if ENV == "prod" else "/docs",
    redoc_url=None if ENV == "prod" else "/redoc"
)

origins = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health_check():
    return {"status": "ok"}


app.include_router(profile_router, prefix="/api")
app.include_router(rewards_router)
app.include_router(giftcode_router)
app.include_router(voucher_router)


# Malformed bodies are a client error, not an "unprocessable entity"
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info("Rejected request to %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request data", "errors": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
