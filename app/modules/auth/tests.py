"""
Tests de autenticación: login con la contraseña de la tienda y validación
del token Bearer.
"""

import pytest
import jwt
from datetime import timedelta

from app.core.config import settings
from app.modules.auth.utils import (
    SHOP_SUBJECT, create_access_token, decode_access_token, verify_shop_password
)


class TestAuthUtils:

    def test_verify_shop_password(self):
        assert verify_shop_password("segredo-teste")
        assert not verify_shop_password("segredo")

    def test_token_roundtrip(self):
        payload = decode_access_token(create_access_token({"sub": SHOP_SUBJECT}))
        assert payload["sub"] == SHOP_SUBJECT
        assert payload["type"] == "access"

    def test_expired_token(self):
        token = create_access_token({"sub": SHOP_SUBJECT}, expires_delta=timedelta(seconds=-1))
        with pytest.raises(jwt.ExpiredSignatureError):
            decode_access_token(token)

    def test_foreign_subject_is_rejected(self):
        token = jwt.encode({"sub": "admin", "type": "access"}, settings.APP_SECRET_STRING, algorithm=settings.ALGORITHM)
        with pytest.raises(jwt.InvalidTokenError):
            decode_access_token(token)


class TestAuthAPI:

    def test_login_success(self, client):
        response = client.post("/auth/login", json={"password": "segredo-teste"})
        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["expires_in"] == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60

        headers = {"Authorization": f"Bearer {body['access_token']}"}
        assert client.get("/products/", headers=headers).status_code == 200

    def test_login_wrong_password(self, client):
        response = client.post("/auth/login", json={"password": "errada"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Contraseña incorrecta"

    def test_invalid_token(self, client):
        response = client.get("/customers/", headers={"Authorization": "Bearer no-es-un-token"})
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_public_endpoints(self, client):
        assert client.get("/health").json()["status"] == "healthy"
