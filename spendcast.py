"""
Spendcast: Transaction Forecasting & Spending Pattern Analysis

Turns a user's raw transaction history into:
- Monthly income/expense forecasts using exponential smoothing with trend
- Per-category spending forecasts with insight text
- Recurring vs variable expense classification
- Subscription-like behavior detection
- Duplicate charge and spending spike flags
- Savings opportunity suggestions
"""

import asyncio
import logging
import math
from collections import Counter, defaultdict
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, NewType, Optional, Protocol, Tuple

import numpy as np
import pandas as pd
from scipy import stats

logger = logging.getLogger(__name__)


# Transaction kinds
INCOME_KINDS = ("income", "cash_in")
EXPENSE_KIND = "expense"
TRANSACTION_KINDS = INCOME_KINDS + (EXPENSE_KIND,)

# Trend labels
TREND_UP = "up"
TREND_DOWN = "down"
TREND_STABLE = "stable"

# Forecast point kinds
POINT_HISTORICAL = "historical"
POINT_CURRENT = "current"
POINT_PREDICTED = "predicted"

# Anomaly severities
SEVERITY_WARNING = "warning"
SEVERITY_INFO = "info"
SEVERITY_ERROR = "error"

UNCATEGORIZED = "Uncategorized"
UNKNOWN_DESCRIPTION = "unknown"
DEFAULT_CURRENCY_SYMBOL = "₱"

# Smoothing
DEFAULT_ALPHA = 0.3
CATEGORY_ALPHA = 0.25
DEFAULT_HORIZON = 3
CATEGORY_HORIZON = 1
TREND_THRESHOLD = 0.02
TREND_DECAY = 0.9
CONFIDENCE_BASE = 95.0
CONFIDENCE_DECAY_PER_STEP = 8.0
CONFIDENCE_NOISE_WEIGHT = 20.0
CONFIDENCE_FLOOR = 50.0
CONFIDENCE_CEILING = 98.0

# Seasonality
SEASONAL_LAG = 3
SEASONALITY_MIN_POINTS = 4
SEASONALITY_THRESHOLD = 0.3

# Windows
HISTORY_MONTHS = 6
ANOMALY_MONTHS = 3
MIN_FORECAST_MONTHS = 2

# Category insight thresholds (percent)
CATEGORY_STABLE_PCT = 5.0
CATEGORY_SIGNIFICANT_PCT = 20.0

# Recurring / subscription detection
RECURRING_CV_THRESHOLD = 0.15
SUBSCRIPTION_CV_THRESHOLD = 0.10
SUBSCRIPTION_GROWTH = 1.02
SUBSCRIPTION_CONFIDENCE_FLOOR = 70.0
BEHAVIOR_INSIGHT_LIMIT = 6
VARIABLE_NOMINAL_TREND_VALUE = 2.5

# Anomalies
SPIKE_MULTIPLIER = 1.5

# Savings opportunities
SUBSCRIPTION_MIN_OCCURRENCES = 3
SUBSCRIPTION_MIN_COUNT = 3
SUBSCRIPTION_SAVINGS_RATE = 0.05
SUBSCRIPTION_CONFIDENCE = 85
DINING_KEYWORDS = ("food", "dining")
DINING_MIN_TRANSACTIONS = 5
DINING_MONTHLY_FLOOR = 100.0
DINING_SAVINGS_RATE = 0.20
DINING_CONFIDENCE = 78
TRANSPORT_KEYWORDS = ("transport",)
TRANSPORT_SAVINGS_RATE = 0.10
TRANSPORT_CONFIDENCE = 65
MAX_OPPORTUNITIES = 3

# Risk assessment
RISK_HIGH_SAVINGS_RATE = 10.0
RISK_MEDIUM_SAVINGS_RATE = 20.0
RISK_ANOMALY_LIMIT = 2

MonthKey = Tuple[int, int]
DescriptionKey = NewType("DescriptionKey", str)


@dataclass(frozen=True)
class Transaction:
    """A single completed transaction as supplied by the repository."""
    id: str
    date: date
    amount: float
    kind: str
    description: str = ""
    category: Optional[str] = None

    def __post_init__(self):
        amount = float(self.amount)
        if not amount >= 0:
            raise ValueError(f"Transaction {self.id}: amount must be non-negative, got {amount}")
        if self.kind not in TRANSACTION_KINDS:
            raise ValueError(f"Transaction {self.id}: unknown kind {self.kind!r}")
        object.__setattr__(self, "amount", amount)
        if isinstance(self.date, datetime):
            object.__setattr__(self, "date", self.date.date())
        if self.description is None:
            object.__setattr__(self, "description", "")

    @property
    def is_income(self) -> bool:
        return self.kind in INCOME_KINDS

    @property
    def is_expense(self) -> bool:
        return self.kind == EXPENSE_KIND


def resolve_category(tx: Transaction) -> str:
    """Display name of the transaction's category, falling back to Uncategorized."""
    if tx.category and tx.category.strip():
        return tx.category
    return UNCATEGORIZED


def normalize_description(description: Optional[str]) -> DescriptionKey:
    """Canonical grouping key for free-text descriptions."""
    key = (description or "").strip().lower()
    return DescriptionKey(key or UNKNOWN_DESCRIPTION)


def month_key(day: date) -> MonthKey:
    return (day.year, day.month)


def format_month_key(key: MonthKey) -> str:
    return f"{key[0]:04d}-{key[1]:02d}"


def add_months(key: MonthKey, n: int) -> MonthKey:
    """Add n months to a (year, month) key."""
    year, month = key
    new_month = month + n
    new_year = year + (new_month - 1) // 12
    new_month = ((new_month - 1) % 12) + 1
    return (new_year, new_month)


def month_label(key: MonthKey) -> str:
    return date(key[0], key[1], 1).strftime("%b")


def window_start(as_of: date, months: int) -> date:
    """First day included in a trailing window of `months` months ending at as_of."""
    return (pd.Timestamp(as_of) - pd.DateOffset(months=months)).date()


def filter_window(transactions: Iterable[Transaction], start: date,
                  end: Optional[date] = None) -> List[Transaction]:
    """Transactions dated from start through end, both inclusive."""
    return [tx for tx in transactions
            if tx.date >= start and (end is None or tx.date <= end)]


def chronological(transactions: Iterable[Transaction]) -> List[Transaction]:
    return sorted(transactions, key=lambda tx: tx.date)


def group_by_description(transactions: Iterable[Transaction]) -> Dict[DescriptionKey, List[Transaction]]:
    groups: Dict[DescriptionKey, List[Transaction]] = defaultdict(list)
    for tx in transactions:
        groups[normalize_description(tx.description)].append(tx)
    return groups


def coefficient_of_variation(amounts: List[float]) -> float:
    """Population standard deviation over mean; 0 when the mean is 0."""
    values = np.asarray(amounts, dtype=float)
    if values.size == 0 or values.mean() == 0:
        return 0.0
    return float(stats.variation(values))


def round_half_up(value: float) -> int:
    """Round to a whole unit with halves going up (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def round_one_decimal(value: float) -> float:
    """One-decimal rounding of the exact stored value, halves away from zero."""
    return float(Decimal(value).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def _share(part: float, total: float) -> int:
    return round_half_up(part / total * 100) if total > 0 else 0


@dataclass
class MonthlyBucket:
    """Income and expense totals for one calendar month."""
    key: MonthKey
    income_total: float = 0.0
    expense_total: float = 0.0
    transactions: List[Transaction] = field(default_factory=list)


@dataclass
class MonthlyAggregation:
    buckets: Dict[MonthKey, MonthlyBucket]
    months: List[MonthKey]

    def income_series(self) -> List[float]:
        return [self.buckets[m].income_total for m in self.months]

    def expense_series(self) -> List[float]:
        return [self.buckets[m].expense_total for m in self.months]


@dataclass
class SmoothingResult:
    forecast: List[float]
    confidence: List[float]
    trend: str


@dataclass
class SeasonalityResult:
    has_seasonality: bool
    strength: float


@dataclass
class ForecastPoint:
    month: str
    month_key: str
    income: float
    expense: float
    kind: str
    confidence: Optional[float] = None


@dataclass
class ForecastSummary:
    avg_growth: float
    max_savings: float
    confidence: float
    income_trend: str = TREND_STABLE
    expense_trend: str = TREND_STABLE
    income_seasonality: SeasonalityResult = field(
        default_factory=lambda: SeasonalityResult(False, 0.0))
    expense_seasonality: SeasonalityResult = field(
        default_factory=lambda: SeasonalityResult(False, 0.0))


@dataclass
class IncomeExpenseForecast:
    historical: List[ForecastPoint]
    predicted: List[ForecastPoint]
    summary: ForecastSummary


@dataclass
class CategoryForecast:
    category: str
    predicted_amount: float
    historical_average: float
    confidence: float
    trend: str
    change_absolute: float
    change_percent: float
    insight_text: str


@dataclass
class ExpenseTypeForecast:
    amount: float
    percentage_of_total: float
    trend: str
    trend_value: float


@dataclass
class ExpenseTypeBreakdown:
    recurring: ExpenseTypeForecast
    variable: ExpenseTypeForecast


@dataclass
class BehaviorInsight:
    pattern_name: str
    current_average: float
    projected_next_month: float
    trend: str
    confidence: float
    pattern_type: str = "Subscription"


@dataclass
class Anomaly:
    severity: str
    title: str
    description: str
    suggested_action: str
    amount: Optional[float] = None
    count: int = 1
    kind: str = "duplicate"


@dataclass
class SavingsOpportunity:
    title: str
    potential_monthly_amount: float
    confidence: float


@dataclass
class PeriodSummary:
    """Headline figures for the most recent month in the window."""
    monthly_income: float = 0.0
    monthly_expenses: float = 0.0
    net_balance: float = 0.0
    savings_rate: float = 0.0
    income_change: Optional[float] = None
    expense_change: Optional[float] = None


@dataclass
class RiskAssessment:
    summary: str
    risk_level: str
    risk_score: int
    growth_potential: float
    recommendations: List[str]


@dataclass
class ForecastOptions:
    forecast_months: int = DEFAULT_HORIZON
    history_months: int = HISTORY_MONTHS
    anomaly_months: int = ANOMALY_MONTHS
    include_anomalies: bool = True
    include_savings_opportunities: bool = True


@dataclass
class ForecastResult:
    """Structured bundle handed to presentation and narrative collaborators."""
    as_of: date
    forecast: IncomeExpenseForecast
    categories: List[CategoryForecast]
    expense_types: ExpenseTypeBreakdown
    behavior_insights: List[BehaviorInsight]
    period_summary: PeriodSummary
    anomalies: List[Anomaly]
    savings_opportunities: List[SavingsOpportunity]
    risk: RiskAssessment

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["as_of"] = self.as_of.isoformat()
        return data

    def points_frame(self) -> pd.DataFrame:
        """Historical and predicted points as a DataFrame, in chronological order."""
        points = self.forecast.historical + self.forecast.predicted
        return pd.DataFrame([asdict(p) for p in points])


class MonthlyAggregator:
    """Groups transactions into calendar-month buckets."""

    @staticmethod
    def aggregate(transactions: Iterable[Transaction]) -> MonthlyAggregation:
        buckets: Dict[MonthKey, MonthlyBucket] = {}

        for tx in transactions:
            key = month_key(tx.date)
            bucket = buckets.get(key)
            if bucket is None:
                bucket = buckets[key] = MonthlyBucket(key=key)

            if tx.is_income:
                bucket.income_total += tx.amount
            elif tx.is_expense:
                bucket.expense_total += tx.amount
            bucket.transactions.append(tx)

        return MonthlyAggregation(buckets=buckets, months=sorted(buckets))


class Smoother:
    """Single-parameter exponential smoothing with damped trend continuation."""

    def __init__(self, alpha: float = DEFAULT_ALPHA, horizon: int = DEFAULT_HORIZON):
        self.alpha = alpha
        self.horizon = horizon

    def smooth(self, data: List[float]) -> np.ndarray:
        values = np.asarray(data, dtype=float)
        smoothed = np.empty_like(values)
        if values.size == 0:
            return smoothed
        smoothed[0] = values[0]
        for i in range(1, values.size):
            smoothed[i] = self.alpha * values[i] + (1 - self.alpha) * smoothed[i - 1]
        return smoothed

    @staticmethod
    def classify_trend(delta: float, level: float) -> str:
        if delta > TREND_THRESHOLD * level:
            return TREND_UP
        if delta < -TREND_THRESHOLD * level:
            return TREND_DOWN
        return TREND_STABLE

    def forecast(self, data: List[float]) -> SmoothingResult:
        """
        Forecast `horizon` future values of a series.

        Confidence starts at CONFIDENCE_BASE, loses CONFIDENCE_DECAY_PER_STEP
        per step and a noise penalty relative to the forecast level, and is
        clamped to [CONFIDENCE_FLOOR, CONFIDENCE_CEILING]. It never increases
        with the horizon.

        Args:
            data: Ordered numeric series, oldest first

        Returns:
            SmoothingResult with forecast, confidence and trend label
        """
        values = np.asarray(data, dtype=float)
        if values.size == 0:
            return SmoothingResult(
                forecast=[0.0] * self.horizon,
                confidence=[0.0] * self.horizon,
                trend=TREND_STABLE
            )

        smoothed = self.smooth(values)
        last = smoothed[-1]
        previous = smoothed[-2] if smoothed.size > 1 else last
        delta = last - previous
        trend = self.classify_trend(delta, last)

        residuals = values - smoothed
        variance = np.sum(residuals ** 2) / max(1, residuals.size - 1)
        std_error = np.sqrt(variance)

        forecast: List[float] = []
        confidence: List[float] = []
        current = last
        for step in range(self.horizon):
            current += delta * TREND_DECAY ** step
            forecast.append(float(max(0.0, current)))

            noise = std_error / max(1.0, current) * CONFIDENCE_NOISE_WEIGHT
            conf = CONFIDENCE_BASE - step * CONFIDENCE_DECAY_PER_STEP - noise
            conf = float(np.clip(conf, CONFIDENCE_FLOOR, CONFIDENCE_CEILING))
            if confidence:
                conf = min(conf, confidence[-1])
            confidence.append(conf)

        return SmoothingResult(forecast=forecast, confidence=confidence, trend=trend)


class SeasonalityDetector:
    """Estimates how much of a series' variance repeats at a quarterly lag."""

    def __init__(self, lag: int = SEASONAL_LAG, threshold: float = SEASONALITY_THRESHOLD):
        self.lag = lag
        self.threshold = threshold

    def detect(self, data: List[float]) -> SeasonalityResult:
        values = np.asarray(data, dtype=float)
        if values.size < SEASONALITY_MIN_POINTS:
            return SeasonalityResult(has_seasonality=False, strength=0.0)

        variance = np.mean((values - values.mean()) ** 2)
        lag_diffs = values[self.lag:] - values[:-self.lag]
        seasonal_variance = np.mean(lag_diffs ** 2) if lag_diffs.size else variance

        strength = max(0.0, 1 - seasonal_variance / max(variance, 1.0))
        return SeasonalityResult(has_seasonality=bool(strength > self.threshold),
                                 strength=float(strength))


def category_insight(category: str, change_percent: float) -> str:
    """Human-readable comment on a category's predicted change."""
    if abs(change_percent) < CATEGORY_STABLE_PCT:
        return f"Spending pattern for {category} remains stable based on historical data."
    if change_percent > CATEGORY_SIGNIFICANT_PCT:
        return f"Significant spending increase predicted for {category}. Review upcoming expenses."
    # Exactly +5% counts as rising, otherwise it would read as "trending downward".
    if change_percent >= CATEGORY_STABLE_PCT:
        return f"{category} spending expected to rise by {change_percent:.0f}% due to seasonal patterns."
    if change_percent < -CATEGORY_SIGNIFICANT_PCT:
        return f"{category} costs dropping significantly. Great opportunity for savings!"
    return f"{category} spending trending downward by {abs(change_percent):.0f}%."


class CategoryForecaster:
    """Next-month spending prediction for each expense category."""

    def __init__(self, alpha: float = CATEGORY_ALPHA):
        self.smoother = Smoother(alpha=alpha, horizon=CATEGORY_HORIZON)

    def monthly_series(self, transactions: Iterable[Transaction]) -> Dict[str, List[float]]:
        """Per-category monthly totals, only for months the category appears in."""
        totals: Dict[str, Dict[MonthKey, float]] = defaultdict(lambda: defaultdict(float))
        for tx in transactions:
            if not tx.is_expense:
                continue
            totals[resolve_category(tx)][month_key(tx.date)] += tx.amount

        return {
            name: [monthly[key] for key in sorted(monthly)]
            for name, monthly in totals.items()
        }

    def forecast(self, transactions: Iterable[Transaction]) -> List[CategoryForecast]:
        predictions = []

        for name, amounts in self.monthly_series(transactions).items():
            if len(amounts) < MIN_FORECAST_MONTHS:
                logger.debug("Skipping category %s: %d month(s) of data", name, len(amounts))
                continue

            result = self.smoother.forecast(amounts)
            average = float(np.mean(amounts))
            predicted = result.forecast[0]
            change = predicted - average
            change_percent = change / average * 100 if average > 0 else 0.0

            predictions.append(CategoryForecast(
                category=name,
                predicted_amount=round_half_up(predicted),
                historical_average=round_half_up(average),
                confidence=round_half_up(result.confidence[0]),
                trend=result.trend,
                change_absolute=round_half_up(change),
                change_percent=round_one_decimal(change_percent),
                insight_text=category_insight(name, change_percent)
            ))

        return sorted(predictions, key=lambda p: p.predicted_amount, reverse=True)


class ExpenseTypeClassifier:
    """Splits expenses into recurring and variable by amount consistency."""

    def __init__(self, cv_threshold: float = RECURRING_CV_THRESHOLD):
        self.cv_threshold = cv_threshold

    def classify(self, transactions: Iterable[Transaction]) -> ExpenseTypeBreakdown:
        groups = group_by_description(tx for tx in transactions if tx.is_expense)

        recurring_total = 0.0
        variable_total = 0.0
        for group in groups.values():
            amounts = [tx.amount for tx in group]
            if len(amounts) < 2:
                variable_total += amounts[0]
                continue

            mean = float(np.mean(amounts))
            if coefficient_of_variation(amounts) < self.cv_threshold:
                recurring_total += mean
            else:
                variable_total += mean

        total = recurring_total + variable_total
        # Variable trend is a fixed nominal value, not derived from the data.
        return ExpenseTypeBreakdown(
            recurring=ExpenseTypeForecast(
                amount=round_half_up(recurring_total),
                percentage_of_total=_share(recurring_total, total),
                trend=TREND_STABLE,
                trend_value=0.0
            ),
            variable=ExpenseTypeForecast(
                amount=round_half_up(variable_total),
                percentage_of_total=_share(variable_total, total),
                trend=TREND_UP,
                trend_value=VARIABLE_NOMINAL_TREND_VALUE
            )
        )


class BehaviorAnalyzer:
    """Detects subscription-like charges with near-constant amounts."""

    def __init__(self, cv_threshold: float = SUBSCRIPTION_CV_THRESHOLD,
                 limit: int = BEHAVIOR_INSIGHT_LIMIT):
        self.cv_threshold = cv_threshold
        self.limit = limit

    def analyze(self, transactions: Iterable[Transaction]) -> List[BehaviorInsight]:
        insights = []

        for key, group in group_by_description(chronological(transactions)).items():
            if len(group) < 2:
                continue

            amounts = [tx.amount for tx in group]
            cv = coefficient_of_variation(amounts)
            if cv >= self.cv_threshold:
                continue

            average = float(np.mean(amounts))
            increasing = amounts[-1] > amounts[0]
            insights.append(BehaviorInsight(
                pattern_name=key,
                current_average=round_half_up(average),
                projected_next_month=round_half_up(average * (SUBSCRIPTION_GROWTH if increasing else 1)),
                trend=TREND_UP if increasing else TREND_STABLE,
                confidence=round_half_up(max(SUBSCRIPTION_CONFIDENCE_FLOOR, 95 - cv * 100))
            ))

        insights.sort(key=lambda i: i.confidence, reverse=True)
        return insights[:self.limit]


class AnomalyDetector:
    """Heuristic screen for duplicate charges and monthly spending spikes."""

    def __init__(self, spike_multiplier: float = SPIKE_MULTIPLIER,
                 currency_symbol: str = DEFAULT_CURRENCY_SYMBOL):
        self.spike_multiplier = spike_multiplier
        self.currency_symbol = currency_symbol

    def find_duplicates(self, transactions: Iterable[Transaction]) -> List[Anomaly]:
        groups: Dict[Tuple[str, float, date], List[Transaction]] = defaultdict(list)
        for tx in transactions:
            groups[(tx.description, tx.amount, tx.date)].append(tx)

        anomalies = []
        for (description, amount, day), group in groups.items():
            if len(group) < 2:
                continue
            anomalies.append(Anomaly(
                severity=SEVERITY_WARNING,
                kind="duplicate",
                title=f"Duplicate {description or 'Transaction'}",
                description=(f"{len(group)} charges of {self.currency_symbol}{amount:.2f} "
                             f"detected on {day.isoformat()}"),
                amount=round(amount * len(group), 2),
                count=len(group),
                suggested_action="Review"
            ))
        return anomalies

    def find_spending_spike(self, transactions: Iterable[Transaction]) -> Optional[Anomaly]:
        expenses = MonthlyAggregator.aggregate(transactions).expense_series()
        if len(expenses) < MIN_FORECAST_MONTHS:
            return None

        average = float(np.mean(expenses))
        latest = expenses[-1]
        if average <= 0 or latest <= average * self.spike_multiplier:
            return None

        return Anomaly(
            severity=SEVERITY_INFO,
            kind="spending_spike",
            title="Spending Spike Detected",
            description=(f"Current month spending is {(latest / average - 1) * 100:.0f}% "
                         f"above your average"),
            suggested_action="Review"
        )

    def detect(self, transactions: Iterable[Transaction]) -> List[Anomaly]:
        transactions = list(transactions)
        anomalies = self.find_duplicates(transactions)
        spike = self.find_spending_spike(transactions)
        if spike is not None:
            anomalies.append(spike)
        return anomalies


def _category_matches(tx: Transaction, keywords: Tuple[str, ...]) -> bool:
    name = (tx.category or "").lower()
    return any(word in name for word in keywords)


class OpportunityGenerator:
    """Savings suggestions from subscription, dining and transport heuristics."""

    def generate(self, transactions: Iterable[Transaction]) -> List[SavingsOpportunity]:
        transactions = list(transactions)
        aggregation = MonthlyAggregator.aggregate(transactions)
        months = len(aggregation.months)
        if months < MIN_FORECAST_MONTHS:
            return []

        expenses = [tx for tx in transactions if tx.is_expense]
        average_expense = sum(aggregation.expense_series()) / months
        opportunities = []

        counts = Counter(normalize_description(tx.description) for tx in expenses)
        subscriptions = [key for key, n in counts.items() if n >= SUBSCRIPTION_MIN_OCCURRENCES]
        if len(subscriptions) >= SUBSCRIPTION_MIN_COUNT:
            opportunities.append(SavingsOpportunity(
                title=f"Optimize {len(subscriptions)} recurring subscriptions",
                potential_monthly_amount=round_half_up(average_expense * SUBSCRIPTION_SAVINGS_RATE),
                confidence=SUBSCRIPTION_CONFIDENCE
            ))

        dining = [tx for tx in expenses if _category_matches(tx, DINING_KEYWORDS)]
        if len(dining) >= DINING_MIN_TRANSACTIONS:
            average_dining = sum(tx.amount for tx in dining) / months
            if average_dining > DINING_MONTHLY_FLOOR:
                opportunities.append(SavingsOpportunity(
                    title="Reduce dining out frequency by 20%",
                    potential_monthly_amount=round_half_up(average_dining * DINING_SAVINGS_RATE),
                    confidence=DINING_CONFIDENCE
                ))

        transport = [tx for tx in expenses if _category_matches(tx, TRANSPORT_KEYWORDS)]
        if transport:
            average_transport = sum(tx.amount for tx in transport) / months
            opportunities.append(SavingsOpportunity(
                title="Explore alternative transportation",
                potential_monthly_amount=round_half_up(average_transport * TRANSPORT_SAVINGS_RATE),
                confidence=TRANSPORT_CONFIDENCE
            ))

        return opportunities[:MAX_OPPORTUNITIES]


def summarize_period(transactions: Iterable[Transaction]) -> PeriodSummary:
    """Latest-month totals and change versus the month before."""
    aggregation = MonthlyAggregator.aggregate(transactions)
    if not aggregation.months:
        return PeriodSummary()

    current = aggregation.buckets[aggregation.months[-1]]
    income = current.income_total
    expenses = current.expense_total
    net = income - expenses

    income_change = None
    expense_change = None
    if len(aggregation.months) >= 2:
        previous = aggregation.buckets[aggregation.months[-2]]
        if previous.income_total > 0:
            income_change = (income - previous.income_total) / previous.income_total * 100
        if previous.expense_total > 0:
            expense_change = (expenses - previous.expense_total) / previous.expense_total * 100

    return PeriodSummary(
        monthly_income=income,
        monthly_expenses=expenses,
        net_balance=net,
        savings_rate=net / income * 100 if income > 0 else 0.0,
        income_change=income_change,
        expense_change=expense_change
    )


class RiskAssessor:
    """Scores financial risk from the savings rate and flagged items."""

    def assess(self,
               summary: PeriodSummary,
               anomalies: List[Anomaly],
               opportunities: List[SavingsOpportunity]) -> RiskAssessment:
        if summary.savings_rate < RISK_HIGH_SAVINGS_RATE:
            level, score = "high", 75
        elif summary.savings_rate < RISK_MEDIUM_SAVINGS_RATE or len(anomalies) > RISK_ANOMALY_LIMIT:
            level, score = "medium", 45
        else:
            level, score = "low", 15

        recommendations = []
        if summary.savings_rate < RISK_MEDIUM_SAVINGS_RATE:
            recommendations.append(
                "Focus on building an emergency fund to cover 3-6 months of expenses")
        if opportunities:
            recommendations.append(f"Start with: {opportunities[0].title}")
        if anomalies:
            recommendations.append("Review flagged transactions for potential savings")

        concerns = ("no major concerns" if not anomalies
                    else f"{len(anomalies)} items requiring attention")
        return RiskAssessment(
            summary=(f"Your financial health shows a {summary.savings_rate:.1f}% "
                     f"savings rate with {concerns}."),
            risk_level=level,
            risk_score=score,
            growth_potential=sum(o.potential_monthly_amount for o in opportunities),
            recommendations=recommendations or ["Keep up your good financial habits!"]
        )


class TransactionRepository(Protocol):
    """Read-only source of a user's completed transactions."""

    async def fetch_transactions(self, user_id: str, start_date: date) -> List[Transaction]:
        ...


class ForecastOrchestrator:
    """Composes every analysis into one ForecastResult for a user."""

    def __init__(self,
                 repository: Optional[TransactionRepository] = None,
                 options: Optional[ForecastOptions] = None,
                 fetch_timeout: Optional[float] = None,
                 currency_symbol: str = DEFAULT_CURRENCY_SYMBOL):
        self.repository = repository
        self.options = options or ForecastOptions()
        self.fetch_timeout = fetch_timeout
        self.currency_symbol = currency_symbol

    async def generate(self, user_id: str, as_of: Optional[date] = None) -> ForecastResult:
        """
        Fetch the user's transaction window and run the full analysis.

        Fetch failures and timeouts are logged and treated as no data.
        Cancellation of the calling task propagates.
        """
        as_of = as_of or date.today()
        start = window_start(as_of, self.options.history_months)
        transactions = await self._fetch(user_id, start)
        logger.info("Forecasting user %s from %d transaction(s) since %s",
                    user_id, len(transactions), start.isoformat())
        return self.build(transactions, as_of)

    async def _fetch(self, user_id: str, start: date) -> List[Transaction]:
        if self.repository is None:
            logger.warning("No transaction repository configured; using empty history")
            return []
        try:
            return list(await asyncio.wait_for(
                self.repository.fetch_transactions(user_id, start),
                timeout=self.fetch_timeout
            ))
        except asyncio.TimeoutError:
            logger.warning("Transaction fetch for user %s timed out after %ss",
                           user_id, self.fetch_timeout)
            return []
        except Exception:
            logger.exception("Transaction fetch for user %s failed", user_id)
            return []

    def build(self, transactions: Iterable[Transaction],
              as_of: Optional[date] = None) -> ForecastResult:
        """
        Run every analysis over an in-memory transaction snapshot.

        Args:
            transactions: Transactions in any order
            as_of: Reference date for the trailing windows; defaults to the
                latest transaction date (or today when there is none)

        Returns:
            ForecastResult bundle
        """
        transactions = chronological(transactions)
        if as_of is None:
            as_of = transactions[-1].date if transactions else date.today()

        history = filter_window(transactions, window_start(as_of, self.options.history_months), as_of)
        recent = filter_window(history, window_start(as_of, self.options.anomaly_months), as_of)

        forecast = self.forecast_income_expense(history, as_of)
        categories = CategoryForecaster().forecast(history)
        expense_types = ExpenseTypeClassifier().classify(history)
        behavior = BehaviorAnalyzer().analyze(history)
        period = summarize_period(recent)

        anomalies = []
        if self.options.include_anomalies:
            anomalies = AnomalyDetector(currency_symbol=self.currency_symbol).detect(recent)

        opportunities = []
        if self.options.include_savings_opportunities:
            opportunities = OpportunityGenerator().generate(history)

        risk = RiskAssessor().assess(period, anomalies, opportunities)

        return ForecastResult(
            as_of=as_of,
            forecast=forecast,
            categories=categories,
            expense_types=expense_types,
            behavior_insights=behavior,
            period_summary=period,
            anomalies=anomalies,
            savings_opportunities=opportunities,
            risk=risk
        )

    def empty_forecast(self, as_of: date) -> IncomeExpenseForecast:
        """Zero-valued forecast used when there is too little history."""
        current = month_key(as_of)
        predicted = []
        for i in range(self.options.forecast_months):
            label = "Next" if i == 0 else f"Next+{i}"
            predicted.append(ForecastPoint(
                month=label,
                month_key=format_month_key(add_months(current, i + 1)),
                income=0.0,
                expense=0.0,
                kind=POINT_PREDICTED,
                confidence=0.0
            ))

        return IncomeExpenseForecast(
            historical=[ForecastPoint(
                month=month_label(current),
                month_key=format_month_key(current),
                income=0.0,
                expense=0.0,
                kind=POINT_CURRENT
            )],
            predicted=predicted,
            summary=ForecastSummary(avg_growth=0.0, max_savings=0.0, confidence=0.0)
        )

    def forecast_income_expense(self, transactions: Iterable[Transaction],
                                as_of: date) -> IncomeExpenseForecast:
        aggregation = MonthlyAggregator.aggregate(transactions)
        months = aggregation.months
        if len(months) < MIN_FORECAST_MONTHS:
            logger.info("Only %d month(s) of history; returning empty forecast", len(months))
            return self.empty_forecast(as_of)

        income = aggregation.income_series()
        expense = aggregation.expense_series()
        smoother = Smoother(alpha=DEFAULT_ALPHA, horizon=self.options.forecast_months)
        income_forecast = smoother.forecast(income)
        expense_forecast = smoother.forecast(expense)

        historical = [
            ForecastPoint(
                month=month_label(key),
                month_key=format_month_key(key),
                income=income[i],
                expense=expense[i],
                kind=POINT_CURRENT if i == len(months) - 1 else POINT_HISTORICAL
            )
            for i, key in enumerate(months)
        ]

        predicted = []
        for i, (inc, exp) in enumerate(zip(income_forecast.forecast, expense_forecast.forecast)):
            key = add_months(months[-1], i + 1)
            predicted.append(ForecastPoint(
                month=month_label(key),
                month_key=format_month_key(key),
                income=round_half_up(inc),
                expense=round_half_up(exp),
                kind=POINT_PREDICTED,
                confidence=round_half_up((income_forecast.confidence[i] + expense_forecast.confidence[i]) / 2)
            ))

        avg_growth = (income[-1] - income[0]) / max(1.0, income[0]) * 100 / (len(income) - 1)
        savings = [inc - exp for inc, exp in zip(income_forecast.forecast, expense_forecast.forecast)]
        confidences = income_forecast.confidence + expense_forecast.confidence
        detector = SeasonalityDetector()

        return IncomeExpenseForecast(
            historical=historical,
            predicted=predicted,
            summary=ForecastSummary(
                avg_growth=round_one_decimal(avg_growth),
                max_savings=round_half_up(max(savings)),
                confidence=round_half_up(sum(confidences) / len(confidences)),
                income_trend=income_forecast.trend,
                expense_trend=expense_forecast.trend,
                income_seasonality=detector.detect(income),
                expense_seasonality=detector.detect(expense)
            )
        )


def create_example_transactions(as_of: Optional[date] = None) -> List[Transaction]:
    """Six months of typical household transactions ending at as_of."""
    as_of = as_of or date.today()
    current = month_key(as_of)
    transactions = []

    for offset in range(-5, 1):
        year, month = add_months(current, offset)
        tag = f"{year:04d}{month:02d}"
        step = offset + 5

        def day(n: int) -> date:
            return date(year, month, n)

        transactions.extend([
            Transaction(f"sal-{tag}", day(1), 45000 + 500 * step, "income", "Salary", "Salary"),
            Transaction(f"rent-{tag}", day(2), 15000, "expense", "Apartment rent", "Housing"),
            Transaction(f"net-{tag}", day(5), 549, "expense", "Netflix", "Entertainment"),
            Transaction(f"gym-{tag}", day(6), 1500, "expense", "Gym membership", "Health"),
            Transaction(f"groc-{tag}", day(10), 6000 + 250 * step, "expense", "Grocery run", "Food"),
            Transaction(f"dine-{tag}", day(15), 1200 + 100 * (step % 3), "expense", "Dinner out", "Dining"),
            Transaction(f"bus-{tag}", day(20), 800, "expense", "Bus pass", "Transportation"),
        ])

    # Same charge posted twice
    last = date(current[0], current[1], 5)
    transactions.append(Transaction("net-dup", last, 549, "expense", "Netflix", "Entertainment"))
    return transactions


def main():
    """Example usage and demonstration."""
    logging.basicConfig(level=logging.INFO)

    print("=" * 70)
    print("Spendcast: Transaction Forecasting & Pattern Analysis")
    print("=" * 70)

    as_of = date.today()
    result = ForecastOrchestrator().build(create_example_transactions(as_of))
    forecast = result.forecast

    print("\nINCOME VS EXPENSES")
    print("-" * 70)
    print(result.points_frame().to_string(index=False))
    print(f"\n  Avg Growth:   {forecast.summary.avg_growth:.1f}%")
    print(f"  Max Savings:  {forecast.summary.max_savings:,.0f}")
    print(f"  Confidence:   {forecast.summary.confidence:.0f}%")

    print("\n\nCATEGORY FORECASTS")
    print("-" * 70)
    for cat in result.categories:
        print(f"  {cat.category:<15} {cat.predicted_amount:>10,.0f} "
              f"({cat.change_percent:+.1f}%, {cat.trend}) {cat.insight_text}")

    print("\n\nEXPENSE TYPES")
    print("-" * 70)
    for name, item in (("Recurring", result.expense_types.recurring),
                       ("Variable", result.expense_types.variable)):
        print(f"  {name:<10} {item.amount:>10,.0f} ({item.percentage_of_total}%)")

    print("\n\nDETECTED PATTERNS")
    print("-" * 70)
    for insight in result.behavior_insights:
        print(f"  {insight.pattern_name:<20} avg {insight.current_average:>8,.0f} "
              f"next {insight.projected_next_month:>8,.0f} ({insight.confidence}%)")

    print("\n\nANOMALIES")
    print("-" * 70)
    for anomaly in result.anomalies:
        print(f"  [{anomaly.severity}] {anomaly.title}: {anomaly.description}")

    print("\n\nSAVINGS OPPORTUNITIES")
    print("-" * 70)
    for opp in result.savings_opportunities:
        print(f"  {opp.title:<45} {opp.potential_monthly_amount:>8,.0f}/month ({opp.confidence}%)")

    print(f"\n  Risk: {result.risk.risk_level} ({result.risk.risk_score})")

    print("\n" + "=" * 70)
    print("Analysis Complete")
    print("=" * 70)


if __name__ == "__main__":
    main()
