"""Creditor matching rule management."""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from debt_tracker.logger import get_logger
from debt_tracker.models import CreditorMatchingRule, Debt, RuleField, RuleType
from debt_tracker.services.errors import NotFoundError, RuleValidationError
from debt_tracker.services.match_generator import build_default_rules, validate_rule

logger = get_logger(__name__)


async def list_rules(db: AsyncSession, debt_id: UUID) -> list[CreditorMatchingRule]:
    result = await db.execute(
        select(CreditorMatchingRule)
        .where(CreditorMatchingRule.debt_id == debt_id)
        .order_by(CreditorMatchingRule.created_at)
    )
    return list(result.scalars())


async def count_rules(db: AsyncSession, debt_id: UUID) -> int:
    result = await db.execute(
        select(func.count()).select_from(CreditorMatchingRule).where(CreditorMatchingRule.debt_id == debt_id)
    )
    return result.scalar_one()


async def add_rule(
    db: AsyncSession,
    debt_id: UUID,
    *,
    rule_type: RuleType | str,
    field: RuleField | str,
    value: str,
    confidence_threshold: int = 85,
    enabled: bool = True,
) -> CreditorMatchingRule:
    """Validate and store a new rule for a debt.

    Raises:
        NotFoundError: If the debt does not exist
        RuleValidationError: If the rule definition is invalid
    """
    if await db.get(Debt, debt_id) is None:
        raise NotFoundError("Debt")

    errors = validate_rule(
        debt_id=debt_id,
        rule_type=rule_type,
        field=field,
        value=value,
        confidence_threshold=confidence_threshold,
    )
    if errors:
        raise RuleValidationError(errors)

    rule = CreditorMatchingRule(
        debt_id=debt_id,
        type=RuleType(rule_type),
        field=RuleField(field),
        value=value.strip(),
        confidence_threshold=confidence_threshold,
        enabled=enabled,
    )
    db.add(rule)
    await db.flush()
    logger.info(
        "Matching rule added",
        debt_id=str(debt_id),
        rule_id=str(rule.id),
        rule_type=rule.type.value,
        field=rule.field.value,
    )
    return rule


async def toggle_rule(db: AsyncSession, rule_id: UUID, enabled: bool) -> CreditorMatchingRule:
    rule = await db.get(CreditorMatchingRule, rule_id)
    if rule is None:
        raise NotFoundError("Rule")
    rule.enabled = enabled
    await db.flush()
    logger.info("Matching rule toggled", rule_id=str(rule_id), enabled=enabled)
    return rule


async def delete_rule(db: AsyncSession, rule_id: UUID) -> None:
    """Delete a rule. Matches it produced are kept."""
    rule = await db.get(CreditorMatchingRule, rule_id)
    if rule is None:
        raise NotFoundError("Rule")
    await db.delete(rule)
    await db.flush()
    logger.info("Matching rule deleted", rule_id=str(rule_id), debt_id=str(rule.debt_id))


async def ensure_default_rules(db: AsyncSession, debt: Debt) -> list[CreditorMatchingRule]:
    """Create the default rule set for a debt that has no rules at all.

    Disabled rules count as rules, so a user who switched every rule off is not
    given a fresh set. Invalid generated rules are skipped.
    """
    if await count_rules(db, debt.id) > 0:
        return []

    created: list[CreditorMatchingRule] = []
    for rule in build_default_rules(debt):
        errors = validate_rule(
            debt_id=rule.debt_id,
            rule_type=rule.type,
            field=rule.field,
            value=rule.value,
            confidence_threshold=rule.confidence_threshold,
        )
        if errors:
            logger.warning("Skipping invalid default rule", debt_id=str(debt.id), errors=errors)
            continue
        db.add(rule)
        created.append(rule)

    if created:
        await db.flush()
        logger.info("Default matching rules created", debt_id=str(debt.id), count=len(created))
    return created
