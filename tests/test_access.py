"""
Token issuing/verification and the access guard on protected routes.
"""
import time
from datetime import timedelta

import pytest
from jose import jwt

from auth import issue_token, verify_token
from config import get_settings
from errors import InvalidToken, MissingToken
from schemas import new_id

PROTECTED = [
    ("get", "/cart", None),
    ("post", "/cart", {"product_id": "0" * 24, "quantity": 1}),
    ("delete", "/cart/" + "0" * 24, None),
    ("delete", "/cart", None),
    ("get", "/auth/me", None),
    ("put", "/auth/password", {"old_password": "S3cret!pw", "new_password": "N3w!secret"}),
    ("post", "/products", {"name": "Mug", "price": 12.5}),
]


def call(client, method, path, body, headers=None):
    if body is None:
        return getattr(client, method)(path, headers=headers)
    return getattr(client, method)(path, json=body, headers=headers)


class TestTokens:

    def test_roundtrip_claims(self):
        user_id = new_id()

        claims = verify_token(issue_token(user_id, True))

        assert claims.user_id == user_id
        assert claims.is_admin is True

    def test_default_expiry_is_one_hour(self):
        before = time.time()
        claims = verify_token(issue_token(new_id(), False))

        assert 3590 <= claims.exp.timestamp() - before <= 3601

    def test_missing_token(self):
        with pytest.raises(MissingToken):
            verify_token(None)
        with pytest.raises(MissingToken):
            verify_token("")

    def test_expired_token(self):
        token = issue_token(new_id(), False, expires_delta=timedelta(seconds=-30))

        with pytest.raises(InvalidToken):
            verify_token(token)

    def test_wrong_signature(self):
        token = jwt.encode({"sub": new_id(), "is_admin": True, "exp": 9999999999}, "not-the-key", algorithm="HS256")

        with pytest.raises(InvalidToken):
            verify_token(token)

    def test_token_without_subject(self):
        settings = get_settings()
        token = jwt.encode({"is_admin": True, "exp": 9999999999}, settings.secret_key, algorithm=settings.algorithm)

        with pytest.raises(InvalidToken):
            verify_token(token)


    def test_subject_must_be_an_object_id(self):
        settings = get_settings()
        token = jwt.encode({"sub": "abc", "exp": 9999999999}, settings.secret_key, algorithm=settings.algorithm)

        with pytest.raises(InvalidToken):
            verify_token(token)

    def test_subject_is_canonicalized(self):
        user_id = new_id()

        claims = verify_token(issue_token(user_id.upper(), False))

        assert claims.user_id == user_id


class TestAccessGuard:

    @pytest.mark.parametrize("method,path,body", PROTECTED)
    def test_missing_token_is_401(self, test_client, method, path, body):
        response = call(test_client, method, path, body)

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    @pytest.mark.parametrize("method,path,body", PROTECTED)
    def test_malformed_token_is_401(self, test_client, method, path, body):
        response = call(test_client, method, path, body, headers={"Authorization": "Bearer not.a.jwt"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Could not validate credentials"

    @pytest.mark.parametrize("method,path,body", PROTECTED)
    def test_expired_token_is_401(self, test_client, method, path, body):
        token = issue_token(new_id(), True, expires_delta=timedelta(minutes=-1))

        response = call(test_client, method, path, body, headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_signed_token_with_bad_subject_is_401(self, test_client):
        settings = get_settings()
        token = jwt.encode({"sub": "abc", "exp": 9999999999}, settings.secret_key, algorithm=settings.algorithm)

        response = test_client.get("/cart", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Could not validate credentials"

    def test_non_admin_forbidden_from_creating_products(self, test_client, user_headers):
        response = test_client.post("/products", json={"name": "Mug", "price": 12.5}, headers=user_headers)

        assert response.status_code == 403
        assert test_client.get("/products").json() == []

    def test_admin_can_create_products(self, test_client, admin_headers):
        response = test_client.post(
            "/products",
            json={"name": "Mug", "price": 12.5, "category": "Home", "stock": 3},
            headers=admin_headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["name"] == "Mug"
        assert data["stock"] == 3
        assert test_client.get(f"/products/{data['id']}").json()["price"] == 12.5
