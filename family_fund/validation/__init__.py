"""Form input validation package."""

from family_fund.validation.validator import FundInputValidator, parse_amount, parse_date

__all__ = ["FundInputValidator", "parse_amount", "parse_date"]
