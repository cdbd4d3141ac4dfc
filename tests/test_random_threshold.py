from automation.models import PageLocation, RandomTimeRange, StopwatchSettings
from automation.stopwatch.random_threshold import generate

LOCATION = PageLocation.from_url("https://www.example.com/")


def test_disabled_returns_none():
    """
    Random mode off means no random threshold.
    """
    assert generate(StopwatchSettings(), LOCATION) is None


def test_fixed_range_is_deterministic():
    """
    A [10, 10] second range always gives 10, across repeated generations.
    """
    settings = StopwatchSettings(random_time_range_by_domain={
        "example.com": RandomTimeRange(enabled=True, min_seconds=10, max_seconds=10),
    })
    assert [generate(settings, LOCATION) for _ in range(20)] == [10] * 20


def test_global_range_in_minutes():
    """
    The global range is configured in minutes and produced in seconds.
    """
    settings = StopwatchSettings(use_random_time=True, random_time_min_minutes=1, random_time_max_minutes=2)
    assert generate(settings, LOCATION, rng=lambda: 0.0) == 60
    assert generate(settings, LOCATION, rng=lambda: 0.999999) == 120


def test_bounds_are_inclusive_and_uniform_formula():
    """
    floor(r * (max - min + 1)) + min.
    """
    settings = StopwatchSettings(random_time_range_by_domain={
        "*": RandomTimeRange(enabled=True, min_seconds=100, max_seconds=109),
    })
    assert generate(settings, LOCATION, rng=lambda: 0.5) == 105
    assert generate(settings, LOCATION, rng=lambda: 0.0) == 100


def test_swapped_bounds():
    """
    min > max is swapped instead of rejected.
    """
    settings = StopwatchSettings(random_time_range_by_domain={
        "example.com": RandomTimeRange(enabled=True, min_seconds=50, max_seconds=40),
    })
    assert generate(settings, LOCATION, rng=lambda: 0.0) == 40


def test_incomplete_domain_range_falls_back_to_global():
    """
    An enabled per-domain range with a zero bound uses the global minutes.
    """
    settings = StopwatchSettings(
        random_time_min_minutes=5,
        random_time_max_minutes=5,
        random_time_range_by_domain={
            "example.com": RandomTimeRange(enabled=True, min_seconds=0, max_seconds=90),
        },
    )
    assert generate(settings, LOCATION) == 300


def test_disabled_domain_range_uses_global_setting():
    """
    A disabled per-domain range defers to the global toggle.
    """
    range_off = {"example.com": RandomTimeRange(enabled=False, min_seconds=10, max_seconds=10)}
    assert generate(StopwatchSettings(random_time_range_by_domain=range_off), LOCATION) is None

    settings = StopwatchSettings(
        use_random_time=True,
        random_time_min_minutes=3,
        random_time_max_minutes=3,
        random_time_range_by_domain=range_off,
    )
    assert generate(settings, LOCATION) == 180


def test_zero_range_returns_none():
    """
    Both bounds zero disables the random threshold.
    """
    settings = StopwatchSettings(use_random_time=True, random_time_min_minutes=0, random_time_max_minutes=0)
    assert generate(settings, LOCATION) is None


def test_ranges_load_from_storage_aliases():
    """
    Per-domain ranges use camelCase keys in storage.
    """
    settings = StopwatchSettings.model_validate({
        "stopwatchRandomTimeRangeByDomain": {"example.com": {"enabled": True, "minSeconds": 7, "maxSeconds": 7}},
    })
    assert generate(settings, LOCATION) == 7
