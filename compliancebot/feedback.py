"""
Feedback Processor — Human Verdicts Into the Learning Loop

The only external mutation entry point into the learning store. A
reviewer marks a recorded example correct / incorrect / needs_review;
the store updates that example's rules. Rejected updates raise so the
calling interface (HTTP route, chat button) can tell the human their
feedback was not recorded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from compliancebot.errors import FeedbackError, InvalidFeedbackError
from compliancebot.insights import generate_insights
from compliancebot.learning import LearningStore, counter_for
from compliancebot.ledger import ReviewLedger

logger = logging.getLogger(__name__)

# Chat button action-id prefixes → feedback values
ACTION_PREFIXES: tuple[tuple[str, str], ...] = (
    ("feedback_correct", "correct"),
    ("feedback_incorrect", "incorrect"),
    ("feedback_review", "needs_review"),
)

THANK_YOU_MESSAGE = (
    "Thank you for your feedback! This will help improve our compliance detection."
)


def feedback_from_action(action_id: str) -> str:
    """Map a chat action id such as "feedback_correct_ex_123" to a verdict."""
    for prefix, feedback in ACTION_PREFIXES:
        if action_id.startswith(prefix):
            return feedback
    raise InvalidFeedbackError(f"Unrecognized feedback action: {action_id}")


@dataclass
class FeedbackReceipt:
    """Acknowledgement returned to the caller on a recorded verdict."""
    example_id: str
    feedback: str
    ai_decision: str
    rules_updated: list[str]
    counter: Optional[str]  # Counter incremented per rule, None if inconclusive
    message: str = THANK_YOU_MESSAGE

    def to_dict(self) -> dict:
        return {
            "example_id": self.example_id,
            "feedback": self.feedback,
            "ai_decision": self.ai_decision,
            "rules_updated": list(self.rules_updated),
            "counter": self.counter,
            "message": self.message,
        }


class FeedbackProcessor:
    """Applies verdicts to a LearningStore and records them in the ledger."""

    def __init__(self, store: LearningStore, ledger: Optional[ReviewLedger] = None):
        self.store = store
        self.ledger = ledger

    def _ledger_log(self, event_type: str, data: dict) -> Optional[str]:
        if self.ledger is None:
            return None
        return self.ledger.log(event_type, data)

    def submit(
        self,
        example_id: str,
        feedback: str,
        notes: Optional[str] = None,
    ) -> FeedbackReceipt:
        """
        Record one human verdict.

        Raises a FeedbackError subclass when the update is rejected; the
        rejection is still written to the ledger.
        """
        try:
            example = self.store.update_example_feedback(example_id, feedback, notes)
        except FeedbackError as e:
            self._ledger_log("feedback_rejected", {
                "example_id": example_id,
                "feedback": feedback,
                "reason": str(e),
                "error_type": type(e).__name__,
            })
            logger.warning(
                "Feedback rejected: %s", e,
                extra={"example_id": example_id, "feedback": feedback,
                       "error_type": type(e).__name__},
            )
            raise

        rules = list(dict.fromkeys(example.violations_found))
        counter = counter_for(example.ai_decision, feedback)
        ledger_hash = self._ledger_log("feedback_recorded", {
            "example_id": example_id,
            "feedback": feedback,
            "ai_decision": example.ai_decision,
            "rules": rules,
            "counter": counter,
        })
        logger.info(
            "Feedback recorded",
            extra={"example_id": example_id, "feedback": feedback,
                   "decision": example.ai_decision, "ledger_hash": ledger_hash},
        )
        return FeedbackReceipt(
            example_id=example_id,
            feedback=feedback,
            ai_decision=example.ai_decision,
            rules_updated=rules,
            counter=counter,
        )

    def submit_action(self, action_id: str, example_id: str,
                      notes: Optional[str] = None) -> FeedbackReceipt:
        """Record a verdict delivered as a chat button action."""
        return self.submit(example_id, feedback_from_action(action_id), notes)

    def insights(self) -> list[str]:
        return generate_insights(self.store.get_policy_performance())
