import logging
import math
import random
from typing import Callable, Optional

from automation.matching.overrides import resolve_for
from automation.models import PageLocation, RandomTimeRange, StopwatchSettings

logger = logging.getLogger(__name__)


def _effective_range(settings: StopwatchSettings, location: PageLocation):
    domain_range: Optional[RandomTimeRange] = resolve_for(settings.random_time_range_by_domain, location, None)
    global_range = (int(settings.random_time_min_minutes * 60), int(settings.random_time_max_minutes * 60))

    if domain_range is not None and domain_range.enabled:
        if domain_range.min_seconds and domain_range.max_seconds:
            return domain_range.min_seconds, domain_range.max_seconds, "domain"
        return global_range[0], global_range[1], "global (domain range incomplete)"

    if settings.use_random_time:
        return global_range[0], global_range[1], "global"
    return None


def generate(
    settings: StopwatchSettings,
    location: PageLocation,
    rng: Callable[[], float] = random.random,
) -> Optional[int]:
    """
    Pick the random notification threshold (seconds) for this page load.

    Call once per load; the caller caches the result. Returns None when
    random mode is off, in which case the fixed thresholds apply.
    """
    picked = _effective_range(settings, location)
    if picked is None:
        return None

    low, high, source = picked
    if low > high:
        low, high = high, low
    if low == 0 and high == 0:
        return None

    seconds = math.floor(rng() * (high - low + 1)) + low
    logger.info(f"Random notification time for {location.hostname}: {seconds}s (range {low}-{high}s, {source})")
    return seconds
