"""Dashboard figures over completed sessions.

Character counts stand in for token counts: they are cheap, deterministic
and good enough to compare an original prompt against its refinement.
"""

from promptforge.models.session import CompletedSessionSummary, DashboardStats


def compute_stats(summaries: list[CompletedSessionSummary]) -> DashboardStats:
    """Aggregate completed-session summaries into dashboard KPIs."""
    total = len(summaries)
    total_questions = sum(s.question_count for s in summaries)
    original_chars = sum(len(s.original_prompt) for s in summaries)
    enhanced_chars = sum(len(s.enhanced_prompt) for s in summaries)
    saved = max(0, original_chars - enhanced_chars)

    average = round(total_questions / total, 1) if total else 0.0
    reduction = round(saved / original_chars * 100, 1) if original_chars else 0.0

    return DashboardStats(
        total_prompts_enhanced=total,
        total_questions=total_questions,
        average_questions=average,
        total_original_chars=original_chars,
        total_enhanced_chars=enhanced_chars,
        saved_chars=saved,
        percent_reduction=reduction,
    )
