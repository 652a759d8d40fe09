"""
Two-Stage Input Validation

DESIGN DECISION: Form input is validated in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Parsing amounts and dates typed by a person
- Required field presence
- This catches typos and empty fields

STAGE 2 - SEMANTIC VALIDATION:
- Account existence
- SPEND larger than the available balance
- Unusually large amounts
- Likely duplicate entries
- This catches mistakes that parse fine but make no sense

Stage 2 only runs if stage 1 passes, and needs the current fund state.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them; the ledger still enforces its own rules on submit.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from family_fund.config import get_settings
from family_fund.ledger.operations import MAX_FAMILY_REASON_LENGTH, split_family_target
from family_fund.models.fund import (
    MAX_TEXT_LENGTH,
    Account,
    FundState,
    TransactionType,
    utc_now,
)
from family_fund.models.validation import ValidationIssue, ValidationResult


def parse_amount(raw: Any) -> Optional[Decimal]:
    """
    Parse a typed amount such as "1,00,000" or "4000.50".

    Returns None when the text is not a finite number.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        amount = raw
    else:
        text = str(raw).strip().replace(",", "").replace("₹", "")
        if not text:
            return None
        try:
            amount = Decimal(text)
        except InvalidOperation:
            return None
    return amount if amount.is_finite() else None


def parse_date(raw: Union[date, datetime, str, None]) -> Optional[date]:
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw).strip())
    except ValueError:
        return None


def _issue(
    field: str,
    issue_type: str,
    message: str,
    severity: str = "error",
    suggested_fix: Optional[str] = None,
) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity=severity,
        suggested_fix=suggested_fix,
    )


def _has_errors(issues: list[ValidationIssue]) -> bool:
    return any(issue.severity == "error" for issue in issues)


class FundInputValidator:
    """
    Validates form input for every fund operation.

    Stage 1: Schema validation (no state needed)
    Stage 2: Semantic validation (checks against the fund state)
    """

    def __init__(
        self,
        state: Optional[FundState] = None,
        large_amount_threshold: Optional[Decimal] = None,
    ):
        """
        Initialize validator.

        Args:
            state: Current fund state for semantic checks.
                   If None, stage 2 account checks are skipped.
            large_amount_threshold: Amount above which a warning is raised.
                   Defaults to the configured large_amount_warning_inr.
        """
        self._state = state
        if large_amount_threshold is None:
            large_amount_threshold = Decimal(get_settings().app.large_amount_warning_inr)
        self._large_amount = large_amount_threshold

    # =========================================================================
    # STAGE HELPERS
    # =========================================================================

    def _parse_money_field(
        self,
        field: str,
        raw: Any,
        values: dict,
        issues: list[ValidationIssue],
        positive: bool = False,
    ) -> None:
        if raw is None or str(raw).strip() == "":
            issues.append(_issue(field, "missing", f"{field} is required"))
            return
        amount = parse_amount(raw)
        if amount is None:
            issues.append(_issue(
                field,
                "invalid_format",
                f"'{raw}' is not a valid amount",
                suggested_fix="Enter digits only, for example 4000 or 1,00,000",
            ))
        elif positive and amount <= 0:
            issues.append(_issue(field, "invalid_value", "Amount must be greater than zero"))
        else:
            values[field] = amount

    def _parse_text_field(
        self,
        field: str,
        raw: Optional[str],
        values: dict,
        issues: list[ValidationIssue],
        max_length: int = MAX_TEXT_LENGTH,
    ) -> None:
        text = (raw or "").strip()
        if not text:
            issues.append(_issue(field, "missing", f"{field.capitalize()} is required"))
        elif len(text) > max_length:
            issues.append(_issue(
                field,
                "too_long",
                f"{field.capitalize()} is {len(text)} characters long",
                suggested_fix=f"Shorten it to at most {max_length} characters",
            ))
        else:
            values[field] = text

    def _resolve_account(
        self,
        account_id: Optional[str],
        issues: list[ValidationIssue],
    ) -> Optional[Account]:
        if self._state is None or not account_id:
            return None
        account = self._state.get_account(account_id)
        if account is None:
            issues.append(_issue(
                "account_id",
                "not_found",
                f"Account {account_id} does not exist",
                suggested_fix="Pick one of the family accounts",
            ))
        return account

    def _finish(
        self,
        action: str,
        schema_issues: list[ValidationIssue],
        semantic_issues: Optional[list[ValidationIssue]],
        values: dict,
    ) -> ValidationResult:
        schema_valid = not _has_errors(schema_issues)
        semantic_valid = semantic_issues is not None and not _has_errors(semantic_issues)
        issues = schema_issues + (semantic_issues or [])
        return ValidationResult(
            action=action,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=issues,
            warnings=[issue.message for issue in issues if issue.severity == "warning"],
            values=values,
        )

    # =========================================================================
    # PUBLIC VALIDATORS
    # =========================================================================

    def validate_transaction(
        self,
        account_id: Optional[str],
        tx_type: Union[TransactionType, str, None],
        amount: Any,
        description: Optional[str],
    ) -> ValidationResult:
        """Validate the record-transaction form."""
        values: dict = {}
        issues: list[ValidationIssue] = []

        if not account_id:
            issues.append(_issue("account_id", "missing", "Choose an account"))
        else:
            values["account_id"] = account_id
        try:
            values["tx_type"] = TransactionType(tx_type)
        except ValueError:
            issues.append(_issue(
                "tx_type",
                "invalid_value",
                f"Unknown transaction type: {tx_type}",
                suggested_fix="Use SPEND, DEPOSIT or PAPA_TOPUP",
            ))
        self._parse_money_field("amount", amount, values, issues, positive=True)
        self._parse_text_field("description", description, values, issues)

        if _has_errors(issues):
            return self._finish("transaction", issues, None, values)

        semantic: list[ValidationIssue] = []
        account = self._resolve_account(account_id, semantic)
        amount_value: Decimal = values["amount"]

        if (
            account is not None
            and values["tx_type"] is TransactionType.SPEND
            and amount_value > account.actual_balance
        ):
            semantic.append(_issue(
                "amount",
                "insufficient_balance",
                (
                    f"{account.name.value} has only ₹{account.actual_balance:,} available, "
                    f"cannot spend ₹{amount_value:,}"
                ),
                suggested_fix="Record a top-up first or adjust the actual balance",
            ))

        if amount_value > self._large_amount:
            semantic.append(_issue(
                "amount",
                "suspicious_value",
                f"Amount (₹{amount_value:,}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        if self._state is not None and account is not None:
            today = utc_now().date()
            for tx in self._state.transactions_for(account.id):
                if (
                    tx.type is values["tx_type"]
                    and tx.amount == amount_value
                    and tx.description.lower() == values["description"].lower()
                    and tx.created_at.date() == today
                ):
                    semantic.append(_issue(
                        "duplicate",
                        "potential_duplicate",
                        f"An identical {tx.type.value} was already recorded today",
                        severity="warning",
                        suggested_fix="Please verify this isn't a duplicate entry",
                    ))
                    break

        return self._finish("transaction", issues, semantic, values)

    def validate_target_update(
        self,
        account_id: Optional[str],
        new_target: Any,
        reason: Optional[str],
    ) -> ValidationResult:
        """Validate a single-account target change."""
        values: dict = {}
        issues: list[ValidationIssue] = []

        if not account_id:
            issues.append(_issue("account_id", "missing", "Choose an account"))
        else:
            values["account_id"] = account_id
        self._parse_money_field("new_target", new_target, values, issues)
        self._parse_text_field("reason", reason, values, issues)

        if _has_errors(issues):
            return self._finish("target_update", issues, None, values)

        semantic: list[ValidationIssue] = []
        account = self._resolve_account(account_id, semantic)
        target: Decimal = values["new_target"]
        if target < 0:
            semantic.append(_issue(
                "new_target",
                "suspicious_value",
                "Target balance is negative",
                severity="warning",
            ))
        if account is not None and target == account.target_balance:
            semantic.append(_issue(
                "new_target",
                "unchanged",
                "Target balance is unchanged; a history entry will still be recorded",
                severity="info",
            ))

        return self._finish("target_update", issues, semantic, values)

    def validate_family_target(
        self,
        new_total: Any,
        reason: Optional[str],
    ) -> ValidationResult:
        """Validate a family-wide target change and preview the 2:1 split."""
        values: dict = {}
        issues: list[ValidationIssue] = []

        self._parse_money_field("new_total", new_total, values, issues)
        self._parse_text_field("reason", reason, values, issues, max_length=MAX_FAMILY_REASON_LENGTH)

        if _has_errors(issues):
            return self._finish("family_target", issues, None, values)

        semantic: list[ValidationIssue] = []
        total: Decimal = values["new_total"]
        mummy, vaibhav = split_family_target(total)
        values["mummy_portion"] = mummy
        values["vaibhav_portion"] = vaibhav

        if total < 0:
            semantic.append(_issue(
                "new_total",
                "suspicious_value",
                "Family target is negative",
                severity="warning",
            ))
        if total * 2 / 3 != mummy:
            semantic.append(_issue(
                "new_total",
                "rounded",
                f"Split rounded to whole rupees: Mummy ₹{mummy:,}, Vaibhav ₹{vaibhav:,}",
                severity="info",
            ))

        return self._finish("family_target", issues, semantic, values)

    def validate_adjustment(
        self,
        account_id: Optional[str],
        new_actual: Any,
        reason: Optional[str],
    ) -> ValidationResult:
        """Validate a manual actual-balance correction."""
        values: dict = {}
        issues: list[ValidationIssue] = []

        if not account_id:
            issues.append(_issue("account_id", "missing", "Choose an account"))
        else:
            values["account_id"] = account_id
        self._parse_money_field("new_actual", new_actual, values, issues)
        self._parse_text_field("reason", reason, values, issues)

        if _has_errors(issues):
            return self._finish("adjustment", issues, None, values)

        semantic: list[ValidationIssue] = []
        account = self._resolve_account(account_id, semantic)
        actual: Decimal = values["new_actual"]
        if actual < 0:
            semantic.append(_issue(
                "new_actual",
                "suspicious_value",
                "Actual balance is negative",
                severity="warning",
                suggested_fix="Please verify against the bank statement",
            ))
        if account is not None and actual == account.actual_balance:
            semantic.append(_issue(
                "new_actual",
                "unchanged",
                "Actual balance already matches; a history entry will still be recorded",
                severity="info",
            ))

        return self._finish("adjustment", issues, semantic, values)

    def validate_bulk_delete(
        self,
        start_date: Union[date, datetime, str, None],
        end_date: Union[date, datetime, str, None],
    ) -> ValidationResult:
        """Validate a bulk-delete date range and report how many rows it hits."""
        values: dict = {}
        issues: list[ValidationIssue] = []

        for field, raw in (("start_date", start_date), ("end_date", end_date)):
            parsed = parse_date(raw)
            if parsed is None:
                issues.append(_issue(
                    field,
                    "invalid_format",
                    f"'{raw}' is not a valid date",
                    suggested_fix="Use YYYY-MM-DD",
                ))
            else:
                values[field] = parsed

        if not issues and values["start_date"] > values["end_date"]:
            issues.append(_issue(
                "start_date",
                "inconsistent",
                "Start date is after end date",
                suggested_fix="Swap the two dates",
            ))

        if _has_errors(issues):
            return self._finish("bulk_delete", issues, None, values)

        semantic: list[ValidationIssue] = []
        if self._state is not None:
            count = sum(
                1 for tx in self._state.transactions
                if values["start_date"] <= tx.created_at.date() <= values["end_date"]
            )
            values["matching_transactions"] = count
            if count == 0:
                semantic.append(_issue(
                    "date_range",
                    "empty",
                    "No transactions fall in this date range",
                    severity="info",
                ))
            else:
                semantic.append(_issue(
                    "date_range",
                    "destructive",
                    f"{count} transaction(s) will be deleted and their balances reversed",
                    severity="warning",
                ))

        return self._finish("bulk_delete", issues, semantic, values)

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show next to the form.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed."

        lines = []

        errors = result.errors()
        if errors:
            lines.append("❌ Please fix the following:")
            for issue in errors:
                lines.append(f"   • {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
