from datetime import date

from budgetwatch.functional import parse_amount


def format_currency(amount, currency: str = "RWF") -> str:
    value = parse_amount(amount).get_or_else(0.0)
    if value == int(value):
        return f"{currency} {value:,.0f}"
    return f"{currency} {value:,.2f}"


def format_month(month_year: str) -> str:
    year, month = (int(part) for part in month_year.split("-"))
    return date(year, month, 1).strftime("%B %Y")
