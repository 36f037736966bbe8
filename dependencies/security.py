from typing import Optional, Annotated
from fastapi import Header, HTTPException
from config.settings import settings
import hmac

AuthHeader = Annotated[Optional[str], Header(alias="Authorization")]
ActorHeader = Annotated[Optional[str], Header(alias="X-Actor-Id")]

def require_api_token(authorization: AuthHeader = None, actor_id: ActorHeader = None):
    # fail loudly when the server token is not configured
    if not getattr(settings, "API_TOKEN", None):
        raise HTTPException(status_code=500, detail="Server token not configured")

    if not authorization:
        raise HTTPException(
            status_code=401,
            detail="Missing Authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # "Bearer <token>"
    try:
        scheme, token = authorization.split(" ", 1)
    except ValueError:
        raise HTTPException(
            status_code=401,
            detail="Invalid Authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if scheme.lower() != "bearer":
        raise HTTPException(
            status_code=401,
            detail="Invalid auth scheme",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # constant-time comparison
    if not hmac.compare_digest(token.strip(), settings.API_TOKEN):
        raise HTTPException(
            status_code=401,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # actor id is an opaque passthrough stored in run_by / created_by
    return {"client": "gradebook", "actor_id": actor_id}
