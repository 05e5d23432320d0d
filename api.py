"""
Spendcast FastAPI Service

REST API exposing transaction forecasting and spending pattern analysis.
"""

import datetime
import logging
from dataclasses import asdict
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from repository import CsvTransactionRepository, parse_transactions
from settings import settings
from spendcast import (
    AnomalyDetector,
    CategoryForecaster,
    ForecastOptions,
    ForecastOrchestrator,
    Smoother,
    Transaction,
    TransactionRepository,
    DEFAULT_ALPHA,
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Transaction forecasting and spending pattern analysis",
    version=settings.API_VERSION,
    debug=settings.DEBUG
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request/Response Models
class TransactionInput(BaseModel):
    id: str = ""
    date: datetime.date
    amount: float = Field(ge=0, description="Transaction amount, never negative")
    type: str = Field(pattern=r"^(income|cash_in|expense)$")
    description: Optional[str] = None
    category_name: Optional[str] = None


class TransactionsRequest(BaseModel):
    transactions: List[TransactionInput] = Field(default_factory=list)


class ForecastRequest(TransactionsRequest):
    as_of: Optional[datetime.date] = None
    forecast_months: int = Field(default=settings.FORECAST_MONTHS, ge=1, le=12)
    include_anomalies: bool = True
    include_savings_opportunities: bool = True


class SmoothingRequest(BaseModel):
    data: List[float]
    alpha: float = Field(default=DEFAULT_ALPHA, gt=0, le=1)
    horizon: int = Field(default=3, ge=1, le=12)


class SmoothingResponse(BaseModel):
    forecast: List[float]
    confidence: List[float]
    trend: str


# Helper Functions
def to_transactions(items: List[TransactionInput]) -> List[Transaction]:
    """Convert API input to engine transactions."""
    return parse_transactions(item.model_dump() for item in items)


def build_options(request: ForecastRequest) -> ForecastOptions:
    return ForecastOptions(
        forecast_months=request.forecast_months,
        history_months=settings.HISTORY_MONTHS,
        anomaly_months=settings.ANOMALY_MONTHS,
        include_anomalies=request.include_anomalies,
        include_savings_opportunities=request.include_savings_opportunities
    )


def get_repository() -> TransactionRepository:
    if not settings.TRANSACTIONS_CSV:
        raise HTTPException(status_code=503, detail="No transaction source configured")
    return CsvTransactionRepository(settings.TRANSACTIONS_CSV)


# API Endpoints
@app.get("/")
async def root():
    """API health check."""
    return {
        "service": settings.PROJECT_NAME,
        "status": "operational",
        "version": settings.API_VERSION
    }


@app.post("/forecast")
async def forecast(request: ForecastRequest):
    """
    Run the full analysis over the posted transactions.

    Returns forecast points, category forecasts, expense types, detected
    patterns, anomalies, savings opportunities and a risk assessment.
    """
    try:
        orchestrator = ForecastOrchestrator(
            options=build_options(request),
            currency_symbol=settings.CURRENCY_SYMBOL
        )
        result = orchestrator.build(to_transactions(request.transactions), request.as_of)
        return result.to_dict()

    except Exception as e:
        logger.exception("Forecast failed")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/forecast/categories")
async def forecast_categories(request: TransactionsRequest):
    """Next-month spending prediction per category."""
    try:
        predictions = CategoryForecaster().forecast(to_transactions(request.transactions))
        return [asdict(p) for p in predictions]

    except Exception as e:
        logger.exception("Category forecast failed")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/smoothing", response_model=SmoothingResponse)
async def smoothing(request: SmoothingRequest):
    """Exponential smoothing forecast for an arbitrary series."""
    try:
        result = Smoother(alpha=request.alpha, horizon=request.horizon).forecast(request.data)
        return SmoothingResponse(
            forecast=result.forecast,
            confidence=result.confidence,
            trend=result.trend
        )

    except Exception as e:
        logger.exception("Smoothing failed")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/anomalies")
async def anomalies(request: TransactionsRequest):
    """Duplicate charges and spending spikes in the posted transactions."""
    try:
        detector = AnomalyDetector(currency_symbol=settings.CURRENCY_SYMBOL)
        return [asdict(a) for a in detector.detect(to_transactions(request.transactions))]

    except Exception as e:
        logger.exception("Anomaly detection failed")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/users/{user_id}/forecast")
async def user_forecast(user_id: str,
                        as_of: Optional[datetime.date] = None,
                        repository: TransactionRepository = Depends(get_repository)):
    """
    Forecast for a stored user's trailing transaction window.

    A fetch that fails or times out is treated as an empty history.
    """
    try:
        orchestrator = ForecastOrchestrator(
            repository=repository,
            options=ForecastOptions(
                forecast_months=settings.FORECAST_MONTHS,
                history_months=settings.HISTORY_MONTHS,
                anomaly_months=settings.ANOMALY_MONTHS
            ),
            fetch_timeout=settings.FETCH_TIMEOUT_SECONDS,
            currency_symbol=settings.CURRENCY_SYMBOL
        )
        result = await orchestrator.generate(user_id, as_of)
        return result.to_dict()

    except Exception as e:
        logger.exception("Forecast for user %s failed", user_id)
        raise HTTPException(status_code=500, detail=str(e))


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=settings.LOG_LEVEL)
    uvicorn.run(app, host="0.0.0.0", port=8000)
