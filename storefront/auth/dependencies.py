from typing import Any, Dict
from fastapi import HTTPException, Request, status
from fastapi.security import HTTPBearer
from jose import jwt, JWTError
from storefront.auth.constants import PRIVILEGED_ROLES, logger
from storefront.common.custom_exceptions import Forbidden, Unauthorized
from storefront.config.settings import config_settings


# identity is issued elsewhere , this service only verifies the bearer token it is handed
class Authentication(HTTPBearer):
    def __init__(self,auto_error=True):
        super().__init__(auto_error=auto_error)

    async def __call__(self, request:Request) -> Dict[str, Any]:
        auth_creds=await super().__call__(request)
        token=auth_creds.credentials

        decoded_token=self.decode_token(token)

        if not decoded_token or not decoded_token.get("sub"):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,detail="Invalid or expired token provided.")

        return decoded_token

    def decode_token(self,token:str):
        """To verify the signature , expiration and user claims of token"""
        try:
            token_data=jwt.decode(
            token,
            key=config_settings.JWT_SECRET,
            algorithms=[config_settings.JWT_ALGO]
            )
            return token_data
        except JWTError:
            return None


def require_user(request: Request) -> str:
    user_identifier = getattr(request.state, "user_identifier", None)
    if not user_identifier:
        raise Unauthorized("Authentication required")
    return user_identifier


def require_privileged_user(request: Request) -> str:
    user_identifier = require_user(request)
    roles = getattr(request.state, "user_roles", None) or []
    if not PRIVILEGED_ROLES.intersection(roles):
        logger.warning("auth.privileged.denied", extra={"path": request.url.path, "roles": roles})
        raise Forbidden("Privileged role required")
    return user_identifier
