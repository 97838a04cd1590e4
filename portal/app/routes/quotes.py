"""API routes for lawyer case pricing and client quote acceptance."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..schemas.quotes import CreateQuoteRequest, QuoteListResponse, QuoteOut, QuoteResponse
from ..services.payments import get_quote_service
from .dependencies import require_client, require_lawyer

router = APIRouter(prefix="/api", tags=["quotes"])


@router.post(
    "/lawyer/case-pricing",
    response_model=QuoteResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_case_pricing(
    payload: CreateQuoteRequest,
    *,
    current_user=Depends(require_lawyer),
) -> QuoteResponse:
    service = get_quote_service()
    quote = service.create_quote(
        lawyer_id=str(current_user.id),
        case_id=payload.case_id,
        base_price=payload.base_price,
        hourly_rate=payload.hourly_rate,
        estimated_hours=payload.estimated_hours,
        description=payload.description,
    )
    return QuoteResponse(quote=QuoteOut.from_quote(quote))


@router.get("/lawyer/case-pricing", response_model=QuoteListResponse)
def list_case_pricing(*, current_user=Depends(require_lawyer)) -> QuoteListResponse:
    service = get_quote_service()
    quotes = service.list_lawyer_quotes(str(current_user.id))
    return QuoteListResponse(quotes=[QuoteOut.from_quote(quote) for quote in quotes])


@router.post("/lawyer/case-pricing/{quote_id}/send", response_model=QuoteResponse)
def send_case_pricing(
    quote_id: str,
    *,
    current_user=Depends(require_lawyer),
) -> QuoteResponse:
    service = get_quote_service()
    quote = service.send_quote(quote_id=quote_id, lawyer_id=str(current_user.id))
    return QuoteResponse(quote=QuoteOut.from_quote(quote))


@router.get("/client/case-quotes", response_model=QuoteListResponse)
def list_case_quotes(*, current_user=Depends(require_client)) -> QuoteListResponse:
    service = get_quote_service()
    quotes = service.list_client_quotes(str(current_user.id))
    return QuoteListResponse(quotes=[QuoteOut.from_quote(quote) for quote in quotes])


@router.post("/client/case-quotes/{quote_id}/accept", response_model=QuoteResponse)
def accept_case_quote(
    quote_id: str,
    *,
    current_user=Depends(require_client),
) -> QuoteResponse:
    service = get_quote_service()
    quote = service.accept_quote(quote_id=quote_id, client_id=str(current_user.id))
    return QuoteResponse(quote=QuoteOut.from_quote(quote))
