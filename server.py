"""FastAPI backend for consultation booking."""
from decimal import Decimal
from typing import Annotated, Literal

import structlog
from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from consultations import BookingError, get_core, get_settings
from tools import (
    AddFlagInput,
    BookingIdInput,
    CreateBookingInput,
    DayInput,
    RefundInput,
    RegisterProviderInput,
    TransactionsInput,
    run_tool,
)

log = structlog.get_logger()

app = FastAPI(title="Consultation Booking")


class Body(BaseModel):
    model_config = ConfigDict(extra="forbid")


class DaysBody(Body):
    days: list[DayInput]


class FeeBody(Body):
    consultation_fee: Annotated[Decimal, Field(ge=0)]


class StatusBody(Body):
    status: Literal["pending", "confirmed", "cancelled", "completed"]


class PaymentStatusBody(Body):
    payment_status: Literal["pending", "completed", "failed", "refunded"]


class FlagBody(Body):
    type: Annotated[str, Field(min_length=1)]
    message: Annotated[str, Field(min_length=1)]
    created_by: Annotated[str, Field(min_length=1)]


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    log.warning("request_failed", path=request.url.path, code=exc.code, error=exc.message)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"error": str(exc), "code": "validation_error"})


def _call(name: str, arguments: dict) -> dict:
    return run_tool(name, arguments).model_dump(mode="json")


@app.get("/health")
async def health():
    return {"status": "healthy"}


@app.get("/metrics")
def metrics():
    """Ledger totals computed from current bookings."""
    summary = get_core().ledger.transactions().summary
    return {
        "bookings": {
            "total": summary.total_transactions,
            "payments_completed": summary.completed_transactions,
            "payments_pending": summary.pending_transactions,
            "payments_failed": summary.failed_transactions,
            "payments_refunded": summary.refunded_transactions,
        },
        "revenue": {"total_amount": str(summary.total_amount)},
    }


# ============================================
# Providers and availability
# ============================================


@app.post("/providers", status_code=201)
def register_provider(payload: RegisterProviderInput):
    return _call("register_provider", payload.model_dump())


@app.get("/providers")
def search_providers(
    specialization: str | None = None,
    location: str | None = None,
    hospital: str | None = None,
):
    return _call("search_providers", {
        "specialization": specialization,
        "location": location,
        "hospital": hospital,
    })


@app.get("/providers/{provider_id}")
def get_provider(provider_id: str):
    return _call("get_provider", {"provider_id": provider_id})


@app.patch("/providers/{provider_id}/fee")
def update_fee(provider_id: str, payload: FeeBody):
    return _call("update_consultation_fee", {
        "provider_id": provider_id,
        "consultation_fee": payload.consultation_fee,
    })


@app.put("/providers/{provider_id}/availability")
def replace_availability(provider_id: str, payload: DaysBody):
    return _call("replace_availability", {
        "provider_id": provider_id,
        "days": [day.model_dump() for day in payload.days],
    })


@app.put("/providers/{provider_id}/availability/week")
def replace_week(provider_id: str, payload: DaysBody):
    return _call("replace_week", {
        "provider_id": provider_id,
        "days": [day.model_dump() for day in payload.days],
    })


@app.get("/providers/{provider_id}/slots/{date}")
def open_slots(provider_id: str, date: str):
    return _call("get_open_slots", {"provider_id": provider_id, "date": date})


# ============================================
# Bookings
# ============================================


@app.post("/bookings", status_code=201)
def create_booking(payload: CreateBookingInput):
    return _call("create_booking", payload.model_dump())


@app.get("/bookings/transactions")
def transactions(filters: Annotated[TransactionsInput, Query()]):
    return _call("list_transactions", filters.model_dump())


@app.get("/bookings/requester/{requester_id}")
def requester_bookings(requester_id: str):
    return _call("list_requester_bookings", {"requester_id": requester_id})


@app.get("/bookings/provider/{provider_id}")
def provider_bookings(provider_id: str, date: str | None = None):
    return _call("list_provider_bookings", {"provider_id": provider_id, "date": date})


@app.get("/bookings/{booking_id}")
def get_booking(booking_id: str):
    return _call("get_booking", BookingIdInput(booking_id=booking_id).model_dump())


@app.patch("/bookings/{booking_id}/status")
def update_status(booking_id: str, payload: StatusBody):
    return _call("update_booking_status", {"booking_id": booking_id, "status": payload.status})


@app.patch("/bookings/{booking_id}/payment-status")
def update_payment_status(booking_id: str, payload: PaymentStatusBody):
    return _call("update_payment_status", {
        "booking_id": booking_id,
        "payment_status": payload.payment_status,
    })


@app.delete("/bookings/{booking_id}")
def remove_booking(booking_id: str):
    return _call("remove_booking", {"booking_id": booking_id})


@app.post("/bookings/{booking_id}/flags")
def add_flag(booking_id: str, payload: FlagBody):
    return _call("add_flag", AddFlagInput(booking_id=booking_id, **payload.model_dump()).model_dump())


@app.delete("/bookings/{booking_id}/flags/{flag_id}")
def remove_flag(booking_id: str, flag_id: str):
    return _call("remove_flag", {"booking_id": booking_id, "flag_id": flag_id})


# ============================================
# Payments
# ============================================


@app.post("/payments/refund")
def refund(payload: RefundInput):
    return _call("refund_booking", payload.model_dump())


@app.get("/payments/history/{requester_id}")
def payment_history(requester_id: str):
    return _call("payment_history", {"requester_id": requester_id})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
