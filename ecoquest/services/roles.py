"""
Role resolution.

A user's role lives in two places that are not kept in sync: the session's
JWT claims (`user_metadata.role`, set at signup, or `app_metadata.role`) and
the `role` column of their profile row. `resolve_role` walks the sources in
that order and returns the first one that defines a role. The profile row is
only read when no claim defines one, and at most once.
"""
import logging
from typing import Any, Dict, Optional

import jwt

from ecoquest.schemas.auth import Role, Session
from ecoquest.services.identity import IdentityClient, IdentityError

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
JWT_AUDIENCE = "authenticated"


def parse_role(value: Any) -> Optional[Role]:
    if not value or not isinstance(value, str):
        return None
    return Role.ADMIN if value.strip().lower() == Role.ADMIN.value else Role.STUDENT


def decode_claims(access_token: str, secret: Optional[str] = None) -> Dict[str, Any]:
    """Read the claims of a session token. Verified against `secret` when one is configured."""
    try:
        if secret:
            return jwt.decode(access_token, secret, algorithms=[JWT_ALGORITHM], audience=JWT_AUDIENCE)
        # Token has already been accepted by the provider
        return jwt.decode(access_token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        logger.warning(f"Could not decode session claims: {str(e)}")
        return {}


def claims_role(session: Session, secret: Optional[str] = None) -> Optional[Role]:
    claims = decode_claims(session.access_token, secret)
    if not claims:
        # Fall back to the metadata the provider returned alongside the session
        claims = {"user_metadata": session.user.user_metadata, "app_metadata": session.user.app_metadata}
    for key in ("user_metadata", "app_metadata"):
        role = parse_role((claims.get(key) or {}).get("role"))
        if role:
            return role
    return None


async def record_role(identity: IdentityClient, auth_id: str, table: str = "user_details") -> Optional[Role]:
    try:
        rows = await identity.select(table, "role", eq={"auth_id": auth_id}, limit=1)
    except IdentityError as e:
        logger.error(f"Role lookup failed for {auth_id}: {e.message}")
        return None
    if not rows:
        return None
    return parse_role(rows[0].get("role"))


async def resolve_role(
    identity: IdentityClient,
    session: Session,
    table: str = "user_details",
    secret: Optional[str] = None,
    default: Role = Role.STUDENT,
) -> Role:
    role = claims_role(session, secret)
    if role:
        logger.info(f"Role for {session.user_id} from claims: {role.value}")
        return role

    role = await record_role(identity, session.user_id, table)
    if role:
        logger.info(f"Role for {session.user_id} from {table}: {role.value}")
        return role

    logger.info(f"No role defined for {session.user_id}, defaulting to {default.value}")
    return default
