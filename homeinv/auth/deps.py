from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from homeinv.auth.tokens import decode_access_token, tokens_match
from homeinv.config import settings

bearer = HTTPBearer(auto_error=False)

def get_current_subscriber(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> str:
    if creds is None or creds.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="missing bearer token")

    try:
        payload = decode_access_token(creds.credentials)
        subscriber_id = str(payload["sub"]).strip()
    except Exception:
        raise HTTPException(status_code=401, detail="invalid token")

    if not subscriber_id:
        raise HTTPException(status_code=401, detail="invalid token")

    return subscriber_id

def require_admin(x_admin_token: str | None = Header(default=None, alias="x-admin-token")) -> None:
    # open when no admin token is configured (local/dev)
    expected = settings.admin_api_token
    if not expected:
        return
    if not tokens_match(expected, x_admin_token):
        raise HTTPException(status_code=403, detail="admin token required")
