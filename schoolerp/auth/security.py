from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from jose import jwt

from schoolerp.core.config import settings


def create_access_token(
    *, subject: Dict, expires_minutes: Optional[int] = None
) -> str:
    if expires_minutes is None:
        expires_minutes = settings.access_token_expire_minutes

    to_encode = subject.copy()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(
        to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm
    )
    return encoded_jwt


def token_claims_for(user_id, role: str, school_id=None) -> Dict:
    """Claims the API expects in an access token (see auth.dependencies.get_current_user)."""
    claims = {"sub": str(user_id), "role": role}
    if school_id is not None:
        claims["school_id"] = str(school_id)
    return claims
