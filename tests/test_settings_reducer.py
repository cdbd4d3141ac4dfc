from automation.models import StopwatchPosition, StopwatchSettings
from automation.stopwatch.settings_reducer import STOPWATCH_KEYS, apply_changes, settings_from_storage


def test_all_storage_keys_are_known():
    """
    The reducer knows every camelCase storage key of the snapshot.
    """
    assert "stopwatchEnabled" in STOPWATCH_KEYS
    assert "stopwatchRandomTimeRangeByDomain" in STOPWATCH_KEYS
    assert "customBookmarklets" not in STOPWATCH_KEYS


def test_settings_from_storage_applies_defaults():
    """
    Falsy values of "or default" keys fall back to their defaults.
    """
    settings = settings_from_storage({
        "stopwatchEnabled": True,
        "stopwatchNotificationMinutes": 0,
        "stopwatchPosition": "",
        "unrelatedKey": 1,
    })
    assert settings.enabled is True
    assert settings.notification_minutes == 30
    assert settings.position == StopwatchPosition.BOTTOM_RIGHT


def test_invalid_storage_falls_back_to_defaults():
    """
    Garbage in storage does not break loading.
    """
    settings = settings_from_storage({"stopwatchPosition": "middle"})
    assert settings == StopwatchSettings()


def test_invalid_key_does_not_discard_valid_ones():
    """
    Only the key holding an invalid value falls back to its default.
    """
    settings = settings_from_storage({
        "stopwatchEnabled": True,
        "stopwatchNotificationMinutes": 15,
        "stopwatchNotificationTimeByDomain": {"example.com": "soon"},
        "stopwatchPosition": "middle",
    })
    assert settings.enabled is True
    assert settings.notification_minutes == 15
    assert settings.notification_time_by_domain == {}
    assert settings.position == StopwatchPosition.BOTTOM_RIGHT


def test_fractional_domain_times_are_accepted():
    """
    Per-domain notification times may be fractional seconds.
    """
    settings = settings_from_storage({"stopwatchNotificationTimeByDomain": {"example.com": 90.5}})
    assert settings.notification_time_by_domain == {"example.com": 90.5}


def test_apply_changes_returns_new_snapshot():
    """
    The old snapshot is left untouched and a new one is returned.
    """
    before = StopwatchSettings()
    after, change = apply_changes(before, {"stopwatchNotificationEnabled": {"newValue": True}})
    assert before.notification_enabled is False
    assert after.notification_enabled is True
    assert change.keys == ["stopwatchNotificationEnabled"]
    assert not change.restart and not change.threshold_changed and not change.ui_changed


def test_change_classification():
    """
    Enable/allow-list changes restart, threshold keys re-evaluate, position re-renders.
    """
    base = StopwatchSettings()
    _, change = apply_changes(base, {"stopwatchIncludedDomains": {"newValue": "example.com"}})
    assert change.restart

    _, change = apply_changes(base, {"stopwatchNotificationTimeByDomain": {"newValue": {"example.com": 60}}})
    assert change.threshold_changed

    updated, change = apply_changes(base, {"stopwatchPosition": {"newValue": "top-left"}})
    assert change.ui_changed
    assert updated.position == StopwatchPosition.TOP_LEFT


def test_unrelated_keys_are_ignored():
    """
    Changes to other settings leave the snapshot as is.
    """
    base = StopwatchSettings()
    after, change = apply_changes(base, {"customBookmarklets": {"newValue": {}}})
    assert after is base
    assert change.keys == []


def test_removed_key_resets_to_default():
    """
    A missing newValue (key removed) restores the default.
    """
    base = StopwatchSettings(notification_minutes=5)
    after, _ = apply_changes(base, {"stopwatchNotificationMinutes": {"oldValue": 5}})
    assert after.notification_minutes == 30


def test_invalid_change_keeps_snapshot():
    """
    An invalid value is rejected as a whole.
    """
    base = StopwatchSettings()
    after, change = apply_changes(base, {
        "stopwatchEnabled": {"newValue": True},
        "stopwatchPosition": {"newValue": "nowhere"},
    })
    assert after is base
    assert change.keys == []


def test_bookmarks_round_trip_through_aliases():
    """
    Nested bookmark entries keep their camelCase fields through a patch.
    """
    base = StopwatchSettings()
    after, _ = apply_changes(base, {"stopwatchBookmarksByDomain": {"newValue": {
        "example.com": [{"id": "1", "title": "Run", "url": "javascript:void(0)", "delayAfter": 500}],
    }}})
    entry = after.bookmarks_by_domain["example.com"][0]
    assert entry.delay_after == 500
    again, _ = apply_changes(after, {"stopwatchEnabled": {"newValue": True}})
    assert again.bookmarks_by_domain["example.com"][0].delay_after == 500
