"""
Automatic linking run after imports.

High-confidence suggestions are committed as ``auto`` links one at a time in
suggestion order; medium-confidence ones are returned for review and nothing
is stored for them. A failed commit is recorded and the run carries on.
"""
from typing import List

from sqlalchemy.orm import Session

from money_saver.db.core import LinkType
from money_saver.models.transaction_link import AutoLinkResult, CreateLinkRequest, LinkSuggestion, DEFAULT_MATCHING_CONFIG
from money_saver.services import transaction_linking
from money_saver.logging_config import get_logger

logger = get_logger(__name__)

SUGGEST_THRESHOLD = DEFAULT_MATCHING_CONFIG.suggest_threshold
AUTO_LINK_THRESHOLD = DEFAULT_MATCHING_CONFIG.auto_link_threshold


def auto_link_transactions(db: Session, user_id: int) -> AutoLinkResult:
    try:
        suggestions = transaction_linking.get_link_suggestions(db, user_id, SUGGEST_THRESHOLD)
    except Exception as e:
        logger.exception(f"Auto-link aborted for user {user_id}")
        return AutoLinkResult(success=False, errors=[str(e) or "Unknown error during auto-linking"])

    if not suggestions:
        return AutoLinkResult(success=True)

    high_confidence = [s for s in suggestions if s.confidence >= AUTO_LINK_THRESHOLD]
    pending = [s for s in suggestions if SUGGEST_THRESHOLD <= s.confidence < AUTO_LINK_THRESHOLD]

    errors: List[str] = []
    auto_linked: List[LinkSuggestion] = []

    for suggestion in high_confidence:
        result = transaction_linking.create_link(db, user_id, CreateLinkRequest(
            parent_transaction_id=suggestion.parent_transaction.id,
            child_transaction_ids=[c.id for c in suggestion.child_transactions],
            link_type=LinkType.AUTO,
            confidence=suggestion.confidence,
            metadata={"match_scores": suggestion.match_scores.model_dump()},
        ))

        if result.success:
            auto_linked.append(suggestion)
        else:
            errors.append(f"Failed to auto-link {suggestion.parent_transaction.merchant}: {', '.join(result.errors)}")

    logger.info(
        f"Auto-link for user {user_id}: {len(auto_linked)} linked, "
        f"{len(pending)} suggested, {len(errors)} failed"
    )

    return AutoLinkResult(
        success=not errors,
        total_matches=len(suggestions),
        auto_linked_count=len(auto_linked),
        suggested_count=len(pending),
        errors=errors,
        auto_linked_transactions=auto_linked,
        suggested_transactions=pending,
    )


def should_run_auto_link(db: Session, user_id: int) -> bool:
    try:
        return len(transaction_linking.get_link_suggestions(db, user_id, SUGGEST_THRESHOLD)) > 0
    except Exception:
        logger.exception(f"Could not check auto-link candidates for user {user_id}")
        return False
