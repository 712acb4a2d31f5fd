"""
The entry date decides the period. Companies that never defined a period
post freely; once periods exist, the date must fall inside an open one.
"""
from django.core.exceptions import ValidationError

from ..models.period import Period


def resolve_period(company, date):
    periods = Period.objects.for_company(company)
    if not periods.exists():
        return None
    period = periods.filter(start_date__lte=date, end_date__gte=date).first()
    if period is None or period.is_closed:
        raise ValidationError(
            f"No open accounting period for {date} in {company}"
        )
    return period


def assert_period_open(company, date):
    resolve_period(company, date)
