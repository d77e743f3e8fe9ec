"""Role normalisation.

Role strings come from several UI generations and historical data
("Senior Guidance Counselor II", "Program-Chair", "REGISTRAR", ...). They are
mapped onto a small canonical set by one ordered rule table, which drives both
the in-process ``normalize_role`` and the SQL expression built by
``normalized_role_expr``. The two must agree on every input: list/badge queries
group by the SQL form while DTO mapping and write paths use the Python form.

Preparation: lowercase, strip surrounding spaces, turn spaces and hyphens into
underscores. Rules are evaluated in order, first match wins:

1. contains counselor / counsellor / guidance  -> counselor
2. contains admin, or equals administrator / superadmin / super_admin -> admin
3. contains student                            -> student
4. contains guest                              -> guest
5. one of the referral-office synonyms          -> referral_user
6. equals system                               -> system
7. otherwise the prepared string itself

Only ASCII case folding is guaranteed to match across backends; SQLite's
``lower()`` leaves non-ASCII characters untouched.
"""

from __future__ import annotations

import enum
from typing import Literal, NamedTuple

from sqlalchemy import String, case, func, type_coerce
from sqlalchemy.sql.elements import ColumnElement


class Role(str, enum.Enum):
    ADMIN = "admin"
    COUNSELOR = "counselor"
    STUDENT = "student"
    GUEST = "guest"
    REFERRAL_USER = "referral_user"
    SYSTEM = "system"


REFERRAL_SYNONYMS: tuple[str, ...] = (
    "referral_user",
    "referraluser",
    "referral",
    "referral_users",
    "referralusers",
    "dean",
    "registrar",
    "program_chair",
    "programchair",
)


class RoleRule(NamedTuple):
    role: Role
    match: Literal["contains", "equals"]
    tokens: tuple[str, ...]


ROLE_RULES: tuple[RoleRule, ...] = (
    RoleRule(Role.COUNSELOR, "contains", ("counselor", "counsellor", "guidance")),
    RoleRule(Role.ADMIN, "contains", ("admin",)),
    RoleRule(Role.ADMIN, "equals", ("administrator", "superadmin", "super_admin")),
    RoleRule(Role.STUDENT, "contains", ("student",)),
    RoleRule(Role.GUEST, "contains", ("guest",)),
    RoleRule(Role.REFERRAL_USER, "equals", REFERRAL_SYNONYMS),
    RoleRule(Role.SYSTEM, "equals", ("system",)),
)

STUDENT_SIDE_ROLES = frozenset({Role.STUDENT.value, Role.GUEST.value})
CANONICAL_ROLES = frozenset(role.value for role in Role)


def _prepare(raw: str | None) -> str:
    s = (raw or "").lower().strip(" ")
    return s.replace(" ", "_").replace("-", "_")


def normalize_role(raw: str | None) -> str:
    """Map a raw role string to its canonical form (see module docstring)."""
    s = _prepare(raw)
    if s == "":
        return ""
    for rule in ROLE_RULES:
        if rule.match == "contains":
            if any(token in s for token in rule.tokens):
                return rule.role.value
        elif s in rule.tokens:
            return rule.role.value
    return s


def _prepare_expr(column: ColumnElement) -> ColumnElement[str]:
    lowered = func.trim(func.lower(func.coalesce(column, "")))
    return func.replace(func.replace(lowered, " ", "_"), "-", "_")


def normalized_role_expr(column: ColumnElement) -> ColumnElement[str]:
    """SQL twin of ``normalize_role`` for use in WHERE / GROUP BY clauses."""
    prepared = _prepare_expr(column)
    whens = []
    for rule in ROLE_RULES:
        if rule.match == "contains":
            condition = None
            for token in rule.tokens:
                clause = prepared.contains(token, autoescape=True)
                condition = clause if condition is None else condition | clause
        else:
            condition = prepared.in_(rule.tokens)
        whens.append((condition, rule.role.value))
    return type_coerce(case(*whens, else_=prepared), String)


def is_student_side(role: str | None) -> bool:
    return role in STUDENT_SIDE_ROLES
