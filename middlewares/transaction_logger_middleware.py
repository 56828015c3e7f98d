import logging
import time

from fastapi import Request
from pymongo.errors import PyMongoError
from starlette.middleware.base import BaseHTTPMiddleware

from utils.transaction_logger import build_log, log_transaction

logger = logging.getLogger(__name__)


class TransactionLoggerMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.time()
        response = await call_next(request)
        duration = int((time.time() - start) * 1000)

        db = getattr(request.app.state, "mongo_db", None)
        if db is None:
            # transaction history disabled (no MONGO_URI)
            return response

        log = build_log(request, response.status_code, duration)
        try:
            await log_transaction(db, log)
        except PyMongoError as e:
            logger.warning("[Logger Error] Could not insert log: %s", e)

        return response
