"""
Two-Stage Ledger Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - STRUCTURAL VALIDATION (no storage access):
- Amount is a positive, finite number
- Account references match the transaction type
- A transfer names two different accounts
- Account updates never touch balance or identity fields

STAGE 2 - BALANCE VALIDATION (inside the atomic scope):
- An expense or transfer does not overdraw its source account

WHY TWO STAGES:
1. A malformed draft is rejected before any storage round trip
2. The sufficiency check must read the balance inside the same atomic
   scope that writes it, or two concurrent postings could both pass a
   stale check and jointly overdraw the account

IMPORTANT: Validation NEVER silently fixes issues.
It reports them to the caller.
"""

from decimal import Decimal
from typing import Union

from pydantic import ValidationError as PydanticValidationError

from pocket_ledger.errors import InsufficientBalanceError, ValidationError
from pocket_ledger.models.account import (
    PROTECTED_ACCOUNT_FIELDS,
    Account,
    AccountDraft,
    AccountUpdate,
)
from pocket_ledger.models.transaction import TransactionDraft, TransactionType
from pocket_ledger.models.validation import ValidationIssue, ValidationResult


def _issues_from_pydantic(error: PydanticValidationError) -> list[ValidationIssue]:
    """Translate pydantic errors into ledger validation issues."""
    issues = []
    for detail in error.errors():
        field = ".".join(str(part) for part in detail["loc"]) or "draft"
        issue_type = "unknown_field" if detail["type"] == "extra_forbidden" else "invalid_value"
        issues.append(ValidationIssue(
            field=field,
            issue_type=issue_type,
            message=f"{field}: {detail['msg']}",
        ))
    return issues


class LedgerValidator:
    """
    Validates drafts and updates before they reach the ledger.

    Stage 1 runs without storage; stage 2 (check_sufficiency) is called by
    the Transaction Poster with freshly read account state.
    """

    # -------------------------------------------------------------------------
    # Parsing raw input
    # -------------------------------------------------------------------------

    def parse_transaction_draft(
        self,
        draft: Union[TransactionDraft, dict],
    ) -> TransactionDraft:
        """Accept a draft model or a plain dict, reporting type errors uniformly."""
        if isinstance(draft, TransactionDraft):
            return draft
        try:
            return TransactionDraft.model_validate(draft)
        except PydanticValidationError as e:
            issues = _issues_from_pydantic(e)
            raise ValidationError("; ".join(i.message for i in issues), issues)

    def parse_account_draft(self, draft: Union[AccountDraft, dict]) -> AccountDraft:
        if isinstance(draft, AccountDraft):
            return draft
        try:
            return AccountDraft.model_validate(draft)
        except PydanticValidationError as e:
            issues = _issues_from_pydantic(e)
            raise ValidationError("; ".join(i.message for i in issues), issues)

    # -------------------------------------------------------------------------
    # Stage 1: structural
    # -------------------------------------------------------------------------

    def validate_draft(self, draft: TransactionDraft) -> ValidationResult:
        """
        Stage 1: structural validation of a transaction draft.

        Checks:
        - amount > 0 (and finite)
        - income/expense: account_id present, no transfer accounts
        - transfer: both accounts present and different, no account_id
        """
        issues = []

        if not draft.amount.is_finite():
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="amount must be a finite number",
            ))
        elif draft.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="amount must be positive",
            ))

        if draft.type == TransactionType.TRANSFER:
            if not draft.from_account_id:
                issues.append(ValidationIssue(
                    field="from_account_id",
                    issue_type="missing",
                    message="transfer requires a source account",
                ))
            if not draft.to_account_id:
                issues.append(ValidationIssue(
                    field="to_account_id",
                    issue_type="missing",
                    message="transfer requires a destination account",
                ))
            if (
                draft.from_account_id
                and draft.from_account_id == draft.to_account_id
            ):
                issues.append(ValidationIssue(
                    field="to_account_id",
                    issue_type="same_account",
                    message="cannot transfer to the same account",
                ))
            if draft.account_id:
                issues.append(ValidationIssue(
                    field="account_id",
                    issue_type="unexpected",
                    message="transfer must use from/to accounts, not account_id",
                ))
        else:
            if not draft.account_id:
                issues.append(ValidationIssue(
                    field="account_id",
                    issue_type="missing",
                    message=f"{draft.type.value} requires an account",
                ))
            if draft.from_account_id or draft.to_account_id:
                issues.append(ValidationIssue(
                    field="from_account_id" if draft.from_account_id else "to_account_id",
                    issue_type="unexpected",
                    message=f"{draft.type.value} must not name transfer accounts",
                ))

        return ValidationResult(issues=issues)

    def ensure_valid_draft(self, draft: TransactionDraft) -> None:
        """Run stage 1 and raise ValidationError listing every issue found."""
        result = self.validate_draft(draft)
        if not result.is_valid:
            raise ValidationError(result.message, result.issues)

    def validate_account_update(
        self,
        update: Union[AccountUpdate, dict],
    ) -> AccountUpdate:
        """
        Validate a partial account update.

        Balance, id, owner and timestamps can never be set this way.

        Returns:
            The parsed AccountUpdate

        Raises:
            ValidationError: On forbidden, unknown or malformed fields
        """
        if isinstance(update, AccountUpdate):
            parsed = update
        else:
            forbidden = sorted(PROTECTED_ACCOUNT_FIELDS.intersection(update))
            if forbidden:
                issues = [
                    ValidationIssue(
                        field=name,
                        issue_type="forbidden",
                        message=(
                            "balance can only change through posted transactions"
                            if name == "balance"
                            else f"{name} cannot be updated"
                        ),
                    )
                    for name in forbidden
                ]
                raise ValidationError("; ".join(i.message for i in issues), issues)
            try:
                parsed = AccountUpdate.model_validate(update)
            except PydanticValidationError as e:
                issues = _issues_from_pydantic(e)
                raise ValidationError("; ".join(i.message for i in issues), issues)

        if not parsed.to_fields():
            issue = ValidationIssue(
                field="update",
                issue_type="empty",
                message="no fields to update",
            )
            raise ValidationError(issue.message, [issue])
        return parsed

    # -------------------------------------------------------------------------
    # Stage 2: balance
    # -------------------------------------------------------------------------

    def check_sufficiency(self, account: Account, amount: Decimal) -> None:
        """
        Stage 2: the source account must cover the amount.

        Must be called with account state read inside the atomic scope.
        Account type is ignored: a credit card is held to the same rule.
        """
        if account.balance < amount:
            raise InsufficientBalanceError(
                account_id=account.id,
                available=account.balance,
                requested=amount,
            )

    def get_user_friendly_summary(self, error: ValidationError) -> str:
        """Render a ValidationError for display."""
        if not error.issues:
            return f"❌ {error}"
        lines = ["❌ Please fix the following before saving:"]
        for issue in error.issues:
            lines.append(f"   • {issue.message}")
        return "\n".join(lines)
