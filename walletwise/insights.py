"""Rule-based spending insights.

Turns the period comparison from get_insights_data() into a short list of
human-readable observations.  Rules are applied in order and the result is
capped at MAX_INSIGHTS.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from walletwise.formatting import format_currency

MAX_INSIGHTS = 5

# Category spending must move by more than this percentage to be reported
CHANGE_THRESHOLD = Decimal("20")

POSITIVE = "positive"
NEUTRAL = "neutral"
ATTENTION = "attention"


@dataclass(frozen=True)
class Insight:
    type: str
    title: str
    description: str


def _whole_percent(value: Decimal) -> Decimal:
    return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def _category_insights(data: dict) -> list[Insight]:
    amounts = {c["category"]: c["amount"] for c in data["top_categories"]}
    insights = []
    for change in data["category_changes"]:
        name = change["category"]
        pct = change["change"]
        if pct > CHANGE_THRESHOLD:
            insights.append(Insight(
                ATTENTION,
                f"{name} spending is up",
                f"Your {name.lower()} costs jumped {_whole_percent(pct)}% to "
                f"{format_currency(amounts.get(name, 0))}. "
                "Reviewing these daily GHS payments could help.",
            ))
        elif pct < -CHANGE_THRESHOLD:
            insights.append(Insight(
                POSITIVE,
                f"Great job on {name}!",
                f"You reduced your {name.lower()} spending by "
                f"{_whole_percent(abs(pct))}% compared to last period.",
            ))
    return insights


def generate_insights(data: dict) -> list[Insight]:
    """Ordered insights: category swings, savings, largest anomaly, recurring."""
    insights = _category_insights(data)

    income = data["total_income"]
    spending = data["total_spending"]
    timeframe = data["timeframe"]
    if income > spending:
        insights.append(Insight(
            POSITIVE,
            "You're living within your means",
            f"You've kept {format_currency(income - spending)} as a buffer "
            f"{timeframe}. Keep this up to build your emergency fund.",
        ))
    elif spending > income:
        insights.append(Insight(
            ATTENTION,
            "Spending exceeded income",
            f"You spent {format_currency(spending - income)} more than you "
            f"earned {timeframe}. Review your MoMo transactions for flexible "
            "expenses to cut back.",
        ))

    if data["anomalies"]:
        biggest = max(data["anomalies"], key=lambda a: a["amount"])
        insights.append(Insight(
            NEUTRAL,
            "Large one-time expense",
            f"A payment of {format_currency(biggest['amount'])} for "
            f"\"{biggest['description']}\" stands out.",
        ))

    if data["recurring_transactions"]:
        count = len(data["recurring_transactions"])
        insights.append(Insight(
            NEUTRAL,
            "Multiple recurring payments",
            f"We found {count} regular payments {timeframe}. Check your "
            "subscriptions to ensure you still need them all.",
        ))

    if not insights:
        insights.append(Insight(
            POSITIVE,
            "Financial habits looking stable",
            "Your spending patterns are consistent with your usual behavior.",
        ))

    return insights[:MAX_INSIGHTS]
