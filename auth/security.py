# auth/security.py
import os, hashlib, secrets, datetime as dt
from dotenv import load_dotenv
from jose import jwt
from passlib.context import CryptContext

from utils.date_utils import utcnow

load_dotenv()

pwd_ctx = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=int(os.getenv("BCRYPT_ROUNDS", "12")),
)
JWT_ALG = "HS256"
JWT_SECRET = os.getenv("JWT_SECRET", "change-me")
ACCESS_MIN = int(os.getenv("ACCESS_MIN", "15"))
REFRESH_DAYS = int(os.getenv("REFRESH_DAYS", "15"))


def hash_password(p): return pwd_ctx.hash(p)


def verify_password(p, h): return pwd_ctx.verify(p, h)


def create_access_token(sub: str, role: str | None):
    exp = utcnow() + dt.timedelta(minutes=ACCESS_MIN)
    return jwt.encode({"sub": sub, "role": role, "exp": exp}, JWT_SECRET, algorithm=JWT_ALG)


def decode_access_token(token: str):
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])


def hash_refresh_token(raw: str) -> str:
    return hashlib.sha256(raw.encode()).hexdigest()


def make_refresh_token():
    raw = secrets.token_urlsafe(48)  # return this to client
    return raw, hash_refresh_token(raw)  # store digest in DB


def refresh_exp():
    return utcnow() + dt.timedelta(days=REFRESH_DAYS)
