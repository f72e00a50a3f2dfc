import database
from schemas import User
from security import create_access_token, hash_password

PNG = b"\x89PNG\r\n\x1a\n" + b"0" * 64
PDF = b"%PDF-1.4\n" + b"0" * 64


def make_user(email, role="user", password="secret123"):
    return database.create_document("user", User(email=email, password_hash=hash_password(password), role=role))


def bearer(user_id, role):
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}
