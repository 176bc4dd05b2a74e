import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from .config import settings
from .errors import ConcurrencyConflict, LedgerError
from .routers import (
    banking,
    bills,
    chart_of_accounts,
    health,
    journal_entries,
    payments,
    sales,
    sequences,
    suppliers,
)

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Fiscal Ledger API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StaleDataError)
def stale_data_handler(request: Request, exc: StaleDataError):
    logger.warning("Optimistic lock conflict on %s %s: %s", request.method, request.url.path, exc)
    conflict = ConcurrencyConflict("The record was modified by another request; retry the operation.")
    return JSONResponse(status_code=conflict.status_code, content=conflict.to_dict())


@app.exception_handler(IntegrityError)
def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("Integrity conflict on %s %s: %s", request.method, request.url.path, exc.orig)
    conflict = ConcurrencyConflict("The change conflicts with data written concurrently; retry the operation.")
    return JSONResponse(status_code=conflict.status_code, content=conflict.to_dict())


app.include_router(health.router)
app.include_router(chart_of_accounts.router)
app.include_router(journal_entries.router)
app.include_router(sales.router)
app.include_router(suppliers.router)
app.include_router(bills.router)
app.include_router(payments.router)
app.include_router(banking.router)
app.include_router(sequences.router)


@app.get("/")
def root():
    return {"status": "ok"}
