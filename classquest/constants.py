"""
classquest.constants — Shared Constants
========================================

Single source of truth for the action XP table, the cosmetic style catalog
and the role badge ladders.  Import from here instead of duplicating in
services and tests.
"""

from __future__ import annotations

from classquest.database.models import ActionType, UserRole

# ---------------------------------------------------------------------------
# Default XP per action (callers may pass an explicit amount instead)
# ---------------------------------------------------------------------------
DEFAULT_ACTION_XP: dict[ActionType, int] = {
    ActionType.CONTENT_CREATION: 20,
    ActionType.MARKS_ENTRY: 10,
    ActionType.ATTENDANCE_SUBMISSION: 15,
    ActionType.HOMEWORK_CREATION: 20,
    ActionType.ANNOUNCEMENT_CREATION: 10,
    ActionType.POLL_PARTICIPATION: 5,
    ActionType.MANUAL_AWARD: 0,  # varies
}


# ---------------------------------------------------------------------------
# Cosmetic styles — avatar border treatments referenced by shop items
# ---------------------------------------------------------------------------
COSMETIC_STYLES: dict[str, dict[str, object]] = {
    "border_blue": {"color": "#007AFF", "width": 4},
    "border_green": {"color": "#34C759", "width": 4},
    "border_red": {"color": "#FF3B30", "width": 4},
    "border_gold": {"color": "#FFD700", "width": 4},
    "border_silver": {"color": "#C0C0C0", "width": 4},
    "border_bronze": {"color": "#CD7F32", "width": 4},
    "border_neon": {"color": "#FF00FF", "width": 4, "glow": True},
    "border_fire": {"color": "#FF4500", "width": 4, "line": "dashed"},
    "border_ice": {"color": "#00FFFF", "width": 4, "glow": True},
    "border_rainbow": {"color": "#9400D3", "width": 4, "line": "dotted"},
}


# ---------------------------------------------------------------------------
# Role badge ladders — (badge_id, name, min_xp), ascending by min_xp
# ---------------------------------------------------------------------------
ROLE_BADGES: dict[UserRole, list[tuple[str, str, int]]] = {
    UserRole.STUDENT: [
        ("student_novice", "Novice Scholar", 100),
        ("student_apprentice", "Apprentice", 500),
        ("student_seeker", "Knowledge Seeker", 1000),
        ("student_star", "Classroom Star", 2500),
        ("student_master", "Academic Master", 5000),
    ],
    UserRole.TEACHER: [
        ("teacher_mentor", "New Mentor", 100),
        ("teacher_guide", "Guide", 500),
        ("teacher_leader", "Inspiring Leader", 1000),
        ("teacher_educator", "Master Educator", 2500),
        ("teacher_legend", "Legendary Professor", 5000),
    ],
    UserRole.PARENT: [
        ("parent_supporter", "Supporter", 100),
        ("parent_guardian", "Involved Guardian", 500),
        ("parent_super", "Super Parent", 1000),
        ("parent_champion", "Family Champion", 2500),
        ("parent_pillar", "Education Pillar", 5000),
    ],
}
