# storefront/services/idempotency_store.py
import json

import redis

from storefront.utils.logging import get_logger
from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL

logger = get_logger(__name__)

PENDING = "__pending__"

#LUA porownaj i usun, atomowo - zwalniamy tylko rezerwacje, nigdy zapisanej sesji
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class IdempotencyStore:
    """
    Klucze idempotencji checkoutu w Redisie:
    -rezerwacja klucza (SET NX EX) przed wywolaniem procesora
    -zapis wyniku (session_id, url) pod tym samym kluczem
    -zwolnienie rezerwacji po bledzie, zeby klient mogl ponowic
    """

    def __init__(self, url: str | None = None):
        self.redis = redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def key_for(user_id: str, idempotency_key: str) -> str:
        return f"checkout:idem:{user_id}:{idempotency_key}"

    @redis_retry()
    def get(self, key: str) -> dict | str | None:
        raw = self.redis.get(key)
        if raw is None or raw == PENDING:
            return raw
        return json.loads(raw)

    @redis_retry()
    def reserve(self, key: str, ttl: int) -> bool:
        logger.info(f"Rezerwacja klucza idempotencji {key}")
        #SET checkout:idem:u1:abc "__pending__" NX EX ttl
        return bool(self.redis.set(name=key, value=PENDING, nx=True, ex=ttl))

    @redis_retry()
    def save(self, key: str, value: dict, ttl: int) -> None:
        self.redis.set(name=key, value=json.dumps(value), ex=ttl)

    @redis_retry()
    def release(self, key: str) -> bool:
        logger.info(f"Zwolnienie klucza idempotencji {key}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, PENDING)
        return bool(res)
