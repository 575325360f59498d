"""Map free-text task status labels to a fixed set of states."""

from typing import Optional

COMPLETED = "completed"
IN_PROGRESS = "in_progress"
BLOCKED = "blocked"
PENDING = "pending"

# Order matters: the first group containing a matching keyword wins.
# Cancelled/abandoned work is deliberately grouped with completed.
STATUS_KEYWORDS = (
    (COMPLETED, (
        "complete", "done", "terminé", "finished", "closed", "resolved",
        "archived", "ready for deployment", "shipped", "deployed",
        "canceled", "cancelled", "annulé", "abandoned", "abandonné",
    )),
    (IN_PROGRESS, (
        "progress", "review", "en cours", "testing", "qa", "validation",
    )),
    (BLOCKED, (
        "blocked", "bloqué", "stuck", "waiting", "on hold", "paused",
    )),
    (PENDING, (
        "open", "to do", "à faire", "new", "ready",
    )),
)


def classify(label: Optional[str]) -> str:
    """Classify a status label. Unknown or empty labels are pending."""
    status_lower = (label or "").lower()
    if not status_lower:
        return PENDING

    for state, keywords in STATUS_KEYWORDS:
        if any(keyword in status_lower for keyword in keywords):
            return state

    return PENDING


def task_status_label(task: dict) -> str:
    """Extract the status label from a ClickUp task payload."""
    status = task.get("status")
    if isinstance(status, dict):
        return status.get("status") or ""
    return status or ""


def classify_task(task: dict) -> str:
    return classify(task_status_label(task))
