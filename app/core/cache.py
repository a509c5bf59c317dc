"""
Module de cache Redis pour core-care-participants.

Strategie Cache-Aside (Lazy Loading): la fiche participant complete est mise
en cache a la lecture et invalidee a chaque ecriture sur le participant.
Les erreurs cache ne cassent jamais l'application (graceful degradation).

Usage:
    from app.core.cache import cache_get, cache_set, cache_key_participant

    cached = await cache_get(cache_key_participant("p-1"))
    if cached:
        return ParticipantDetail.model_validate_json(cached)

    await cache_set(cache_key_participant("p-1"), detail.model_dump_json(), ttl=600)
"""

import logging
import time

from opentelemetry import metrics

from app.core.config import settings

logger = logging.getLogger(__name__)

meter = metrics.get_meter("core-care-participants.cache")

cache_hits_counter = meter.create_counter(
    name="cache_hits_total",
    description="Total number of cache hits",
    unit="1",
)

cache_misses_counter = meter.create_counter(
    name="cache_misses_total",
    description="Total number of cache misses",
    unit="1",
)

cache_latency_histogram = meter.create_histogram(
    name="cache_latency_seconds",
    description="Cache operation latency in seconds",
    unit="s",
)


def _get_redis_client():
    """Recupere le client Redis global depuis events (None si non initialise)."""
    from app.core.events import redis_client

    return redis_client


def _extract_key_prefix(key: str) -> str:
    """Extrait le prefix de la cle pour les labels de metriques."""
    parts = key.split(":")
    if len(parts) >= 2:
        return parts[1]  # participants:participant:p-1 -> participant
    return "unknown"


async def cache_get(key: str) -> str | None:
    """
    Lit une valeur depuis le cache Redis.

    Returns:
        Valeur JSON ou None si non trouve/erreur
    """
    if not settings.CACHE_ENABLED:
        return None

    redis_client = _get_redis_client()
    if not redis_client:
        logger.debug("Redis client non initialise, cache desactive")
        return None

    key_prefix = _extract_key_prefix(key)
    start_time = time.perf_counter()

    try:
        value = await redis_client.get(key)
        cache_latency_histogram.record(
            time.perf_counter() - start_time, {"operation": "get", "key_prefix": key_prefix}
        )
        if value:
            cache_hits_counter.add(1, {"key_prefix": key_prefix})
            logger.debug(f"Cache HIT: {key}")
            return value
        cache_misses_counter.add(1, {"key_prefix": key_prefix})
        logger.debug(f"Cache MISS: {key}")
        return None

    except Exception as e:
        # Graceful degradation: erreur cache = cache miss
        cache_misses_counter.add(1, {"key_prefix": "error"})
        logger.warning(f"Cache GET error pour {key}: {e}")
        return None


async def cache_set(key: str, value: str, ttl: int | None = None) -> bool:
    """Ecrit une valeur dans le cache Redis avec TTL (CACHE_TTL_DEFAULT si None)."""
    if not settings.CACHE_ENABLED:
        return False

    redis_client = _get_redis_client()
    if not redis_client:
        return False

    ttl = ttl or settings.CACHE_TTL_DEFAULT
    start_time = time.perf_counter()

    try:
        await redis_client.set(key, value, ex=ttl)
        cache_latency_histogram.record(
            time.perf_counter() - start_time,
            {"operation": "set", "key_prefix": _extract_key_prefix(key)},
        )
        logger.debug(f"Cache SET: {key} (TTL: {ttl}s)")
        return True

    except Exception as e:
        logger.warning(f"Cache SET error pour {key}: {e}")
        return False


async def cache_delete(key: str) -> bool:
    """Supprime une cle du cache (invalidation apres ecriture)."""
    if not settings.CACHE_ENABLED:
        return False

    redis_client = _get_redis_client()
    if not redis_client:
        return False

    try:
        await redis_client.delete(key)
        logger.debug(f"Cache DELETE: {key}")
        return True

    except Exception as e:
        logger.warning(f"Cache DELETE error pour {key}: {e}")
        return False


def cache_key_participant(participant_id: str) -> str:
    """Cle cache de la fiche participant: "participants:participant:{id}"."""
    return f"participants:participant:{participant_id}"


__all__ = [
    "cache_delete",
    "cache_get",
    "cache_key_participant",
    "cache_set",
]
