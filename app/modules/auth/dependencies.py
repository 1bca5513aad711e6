"""
Dependencias de autenticación para FastAPI.
"""
from datetime import datetime, timezone
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
import logging

from app.modules.auth.schemas import AuthContext
from app.modules.auth.utils import decode_access_token

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def require_auth(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
    ) -> AuthContext:
        """
        Puerta de acceso: exige un token emitido por /auth/login.
        """
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No se pudieron validar las credenciales",
            headers={"WWW-Authenticate": "Bearer"},
        )
        if credentials is None:
            raise credentials_exception

        try:
            payload = decode_access_token(credentials.credentials)
        except jwt.PyJWTError as e:
            logger.debug(f"Rejected token: {e}")
            raise credentials_exception

        return AuthContext(
            subject=payload["sub"],
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        )


# Instancias de dependencias
require_auth = AuthDependencies.require_auth
