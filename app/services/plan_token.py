"""
Plan Token Service — signs the plan a user is asked to confirm.

compile() hands the client a token instead of trusting the client to send
the plan back. execute() only accepts a token that verifies, has not expired
and was issued for the same project and actor.

Lifetime:  15 minutes (configurable via PLAN_TOKEN_EXPIRES)
Algorithm: HS256

Token payload:
{
    "type": "plan",
    "project_id": <project_id>,
    "actor_id": <user_id | null>,
    "plan": {...},          # Plan.to_dict()
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from app.ai.assistants.plan import Plan
from app.core.exceptions import ValidationError

DEFAULT_PLAN_TOKEN_EXPIRES = 900
ALGORITHM = "HS256"
TOKEN_TYPE = "plan"

MSG_TOKEN_EXPIRED = "This confirmation has expired. Please send the command again."
MSG_TOKEN_INVALID = "This confirmation is not valid for this project. Please send the command again."


def _get_secret():
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_expires():
    return int(current_app.config.get("PLAN_TOKEN_EXPIRES", DEFAULT_PLAN_TOKEN_EXPIRES))


def issue_plan_token(plan: Plan, project_id: int, actor_id: int | None) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "type": TOKEN_TYPE,
        "project_id": project_id,
        "actor_id": actor_id,
        "plan": plan.to_dict(),
        "iat": now,
        "exp": now + timedelta(seconds=_get_expires()),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def read_plan_token(token: str, project_id: int, actor_id: int | None) -> Plan:
    """
    Verify a plan token and return its plan.

    Raises:
        ValidationError: expired, tampered, wrong type, or issued for another
            project/actor. The message is safe to show to the user.
    """
    try:
        payload = jwt.decode(token or "", _get_secret(), algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise ValidationError(MSG_TOKEN_EXPIRED)
    except jwt.InvalidTokenError:
        raise ValidationError(MSG_TOKEN_INVALID)

    if payload.get("type") != TOKEN_TYPE:
        raise ValidationError(MSG_TOKEN_INVALID)
    if payload.get("project_id") != project_id or payload.get("actor_id") != actor_id:
        raise ValidationError(MSG_TOKEN_INVALID)

    plan = Plan.from_dict(payload.get("plan"))
    if plan is None:
        raise ValidationError(MSG_TOKEN_INVALID)
    return plan
