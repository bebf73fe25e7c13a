from dataclasses import replace
from typing import Iterable, List, NamedTuple, Tuple

from budgetwatch.domain import EXCEEDED, WARNING, AlertRequest, CategorySpendingSummary
from budgetwatch.formatting import format_currency
from budgetwatch.history import HistoryMap, record_notified, was_notified_today

WARNING_PCT = 80.0
EXCEEDED_PCT = 100.0


class Evaluation(NamedTuple):
    alerts: List[AlertRequest]
    history: HistoryMap


def alert_message(alert: AlertRequest, currency: str = "RWF") -> Tuple[str, str]:
    if alert.kind == EXCEEDED:
        return (
            f"Budget Exceeded: {alert.category}",
            f"You've spent {format_currency(alert.spent, currency)} of your "
            f"{format_currency(alert.budget_amount, currency)} budget for {alert.category}.",
        )
    return (
        f"Budget Warning: {alert.category}",
        f"You've spent {alert.percentage:.0f}% of your {alert.category} budget.",
    )


def evaluate(
    summaries: Iterable[CategorySpendingSummary],
    history: HistoryMap,
    month_year: str,
    today: str,
    warning_pct: float = WARNING_PCT,
    exceeded_pct: float = EXCEEDED_PCT,
    currency: str = "RWF",
) -> Evaluation:
    """Decide which alerts fire for this pass and mark them in the history.

    Exceeded wins over warning: a category past its budget never gets a
    warning in the same pass, even if the exceeded alert already went out
    today. Each (month, category, kind) fires at most once per day.
    """
    alerts: List[AlertRequest] = []
    for s in summaries:
        if s.percentage >= exceeded_pct:
            kind = EXCEEDED
        elif s.percentage >= warning_pct:
            kind = WARNING
        else:
            continue

        if was_notified_today(history, month_year, s.category, kind, today):
            continue

        alert = AlertRequest(
            kind=kind,
            category=s.category,
            spent=s.spent,
            budget_amount=s.budget_amount,
            percentage=s.percentage,
        )
        title, body = alert_message(alert, currency)
        alerts.append(replace(alert, title=title, body=body))
        history = record_notified(history, month_year, s.category, kind, today)

    return Evaluation(alerts=alerts, history=history)
