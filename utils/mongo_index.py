# utils/mongo_index.py
import logging

from pymongo.errors import OperationFailure

logger = logging.getLogger(__name__)


def ensure_index(coll, keys, name: str, *, unique: bool | None = None, drop_if_mismatch: bool = False):
    """
    Create an index if it doesn't exist. If an index with the same name exists
    but differs (e.g., unique vs non-unique), optionally drop & recreate.
    """
    info = coll.index_information()
    if name in info:
        current = info[name]
        existing_keys = [(k, d) for k, d in current["key"]]
        existing_unique = bool(current.get("unique", False))
        desired_unique = bool(unique) if unique is not None else False

        if existing_keys == list(keys) and existing_unique == desired_unique:
            return  # already correct

        if not drop_if_mismatch:
            logger.warning("Index %s on %s differs from the wanted definition; leaving it", name, coll.name)
            return

        try:
            coll.drop_index(name)
        except OperationFailure as e:
            logger.warning("Could not drop index %s on %s: %s", name, coll.name, e)

    coll.create_index(keys, name=name, unique=(unique or False))
