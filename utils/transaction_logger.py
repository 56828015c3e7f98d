# utils/transaction_logger.py
from jose import JWTError

from auth.security import decode_access_token
from utils.date_utils import utcnow

TRANSACTION_COLLECTION = "Transaction_History"
REDACTED_HEADERS = {"authorization", "cookie", "x-refresh-token"}


def _actor_id(request):
    """User id from the bearer token, if one is present and valid."""
    auth = request.headers.get("Authorization", "")
    scheme, _, token = auth.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    try:
        return decode_access_token(token.strip()).get("sub")
    except JWTError:
        return None


def build_log(request, response_status, duration_ms: int):
    """Build log document"""
    headers = {
        k: ("***" if k.lower() in REDACTED_HEADERS else v)
        for k, v in request.headers.items()
    }
    return {
        "endpoint": request.url.path,
        "method": request.method,
        "query_params": dict(request.query_params),
        "headers": headers,
        "response_status": response_status,
        "user_id": _actor_id(request),
        "timestamp": utcnow(),
        "duration_ms": duration_ms,
    }


async def log_transaction(db, log: dict):
    """Write a log entry into Transaction_History (motor async client)"""
    await db[TRANSACTION_COLLECTION].insert_one(log)
