from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.core.security import owner_id_from_token
from app.services.storage_policy import ERROR_UNAUTHENTICATED

bearer = HTTPBearer(auto_error=False)

def get_current_owner_id(creds: HTTPAuthorizationCredentials | None = Depends(bearer)) -> str:
    owner_id = owner_id_from_token(creds.credentials if creds else None)
    if not owner_id:
        raise HTTPException(status_code=401, detail=ERROR_UNAUTHENTICATED)
    return owner_id
