"""Training eligibility matching.

A training carries a free-text eligibility tag. This module decides, with
no I/O, whether an employee's type / department / designation satisfy it.
All comparisons are case-insensitive substring checks.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Protocol

EVERYONE_TAGS = frozenset({"", "all", "general"})

TECHNICAL_TAG = "technical"
NON_TECHNICAL_TAG = "non-technical"

TECHNICAL_KEYWORDS = {
    "employee_type": ("technical",),
    "department": ("it", "computer", "software", "technology", "engineering"),
    "designation": ("developer", "engineer", "technical", "analyst", "architect"),
}

NON_TECHNICAL_KEYWORDS = {
    "employee_type": ("non-technical", "administrative"),
    "department": (
        "hr",
        "human resource",
        "finance",
        "accounting",
        "admin",
        "management",
        "marketing",
        "sales",
    ),
    "designation": ("manager", "executive", "officer", "assistant", "coordinator", "admin"),
}


class EmployeeLike(Protocol):
    employee_type: Optional[str]
    department: Optional[str]
    designation: Optional[str]
    is_active: bool


def normalise_tag(tag: Optional[str]) -> str:
    return (tag or "").strip().lower()


def _lower(value: Optional[str]) -> str:
    return (value or "").lower()


# "technical" is a substring of "non-technical"; strip the negated form
# before looking for technical keywords.
_NEGATED_TECHNICAL = "non-technical"


def _matches_keywords(employee: EmployeeLike, keywords: dict, *, strip: str = "") -> bool:
    for field, words in keywords.items():
        value = _lower(getattr(employee, field, None))
        if strip:
            value = value.replace(strip, "")
        if value and any(word in value for word in words):
            return True
    return False


def _account_active(employee: EmployeeLike) -> bool:
    user = getattr(employee, "user", None)
    if user is None:
        return True
    return bool(getattr(user, "is_active", True))


def is_eligible(tag: Optional[str], employee: EmployeeLike) -> bool:
    """
    Return True if `employee` qualifies for a training tagged `tag`.

    - '' / 'all' / 'general'  -> every active employee
    - 'technical'             -> technical keyword set
    - 'non-technical'         -> non-technical keyword set
    - anything else           -> the tag itself as a substring of
                                 type, department or designation

    Inactive employees (or employees whose login account is disabled)
    never qualify.
    """
    if not getattr(employee, "is_active", False) or not _account_active(employee):
        return False

    key = normalise_tag(tag)
    if key in EVERYONE_TAGS:
        return True
    if key == TECHNICAL_TAG:
        return _matches_keywords(employee, TECHNICAL_KEYWORDS, strip=_NEGATED_TECHNICAL)
    if key == NON_TECHNICAL_TAG:
        return _matches_keywords(employee, NON_TECHNICAL_KEYWORDS)

    return any(
        key in _lower(value)
        for value in (employee.employee_type, employee.department, employee.designation)
    )


def filter_eligible(tag: Optional[str], employees: Iterable[EmployeeLike]) -> List[EmployeeLike]:
    return [employee for employee in employees if is_eligible(tag, employee)]
