from fastapi import APIRouter, HTTPException, status
import logging

from app.core.config import settings
from app.modules.auth.schemas import LoginRequest, TokenResponse
from app.modules.auth.utils import SHOP_SUBJECT, create_access_token, verify_shop_password

logger = logging.getLogger(__name__)

auth_router = APIRouter()


@auth_router.post("/login", response_model=TokenResponse)
def login(credentials: LoginRequest):
    """
    Iniciar sesión con la contraseña de la tienda.
    """
    if not verify_shop_password(credentials.password):
        logger.warning("Login attempt with wrong password")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Contraseña incorrecta"
        )

    token = create_access_token({"sub": SHOP_SUBJECT})
    logger.info("Shop login successful")
    return TokenResponse(
        access_token=token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    )
