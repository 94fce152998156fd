# main.py
import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from admin_route import router as admin_router
from db import init_db
from revenue import DataUnavailable

load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()
CORS_ORIGINS = [
  x.strip()
  for x in os.getenv("CORS_ORIGINS", "http://127.0.0.1:8081,http://localhost:8081,http://localhost:19006").split(",")
  if x.strip()
]

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
  init_db()
  logger.info("Database ready")
  yield


app = FastAPI(title="FitBill Admin Backend", version="1.0.0", lifespan=lifespan)
app.add_middleware(
  CORSMiddleware,
  allow_origins=CORS_ORIGINS,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.include_router(admin_router)


@app.exception_handler(DataUnavailable)
async def data_unavailable_handler(request: Request, exc: DataUnavailable):
  # a failed load must never look like a zero-revenue period
  logger.error("Data unavailable for %s: %s", request.url.path, exc)
  return JSONResponse(status_code=503, content={"detail": "Revenue data unavailable"})


@app.get("/health")
def health():
  return {"ok": True}
