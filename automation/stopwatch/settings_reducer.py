import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Tuple

from pydantic import ValidationError

from automation.models import StopwatchSettings

logger = logging.getLogger(__name__)

STOPWATCH_KEYS = [f.alias for f in StopwatchSettings.model_fields.values()]

# Keys whose falsy values fall back to the default ("value || default")
OR_DEFAULT_KEYS = {"stopwatchNotificationMinutes", "stopwatchPosition", "stopwatchIncludedDomains"}

RESTART_KEYS = {"stopwatchEnabled", "stopwatchIncludedDomains"}
THRESHOLD_KEYS = {"stopwatchNotificationMinutes", "stopwatchNotificationTimeByDomain"}
UI_KEYS = {"stopwatchPosition"}


@dataclass
class SettingsChange:
    keys: List[str] = field(default_factory=list)
    restart: bool = False
    threshold_changed: bool = False
    ui_changed: bool = False


def _apply(data: Dict[str, Any], key: str, value: Any):
    if value is None or (key in OR_DEFAULT_KEYS and not value):
        data.pop(key, None)
    else:
        data[key] = value


def settings_from_storage(raw: Mapping[str, Any]) -> StopwatchSettings:
    """
    Build the initial snapshot from a storage read. Keys holding invalid
    values are dropped one by one so the valid ones still apply.
    """
    data: Dict[str, Any] = {}
    for key in STOPWATCH_KEYS:
        if key in raw:
            _apply(data, key, raw[key])
    try:
        return StopwatchSettings.model_validate(data)
    except ValidationError:
        pass

    valid: Dict[str, Any] = {}
    for key, value in data.items():
        try:
            StopwatchSettings.model_validate({key: value})
        except ValidationError as e:
            logger.warning(f"Invalid stopwatch setting {key} in storage, using default: {e}")
            continue
        valid[key] = value
    return StopwatchSettings.model_validate(valid)


def apply_changes(settings: StopwatchSettings, changes: Mapping[str, Any]) -> Tuple[StopwatchSettings, SettingsChange]:
    """
    Reduce a storage change event ({key: {"newValue": v}}) onto a snapshot.

    Only stopwatch keys are patched; everything else in the event is ignored.
    An invalid patch leaves the snapshot untouched.
    """
    touched = [k for k in changes if k in STOPWATCH_KEYS]
    if not touched:
        return settings, SettingsChange()

    data = settings.model_dump(by_alias=True)
    for key in touched:
        change = changes[key]
        new_value = change.get("newValue") if isinstance(change, Mapping) else None
        _apply(data, key, new_value)

    try:
        updated = StopwatchSettings.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Ignoring invalid stopwatch settings change {touched}: {e}")
        return settings, SettingsChange()

    return updated, SettingsChange(
        keys=touched,
        restart=any(k in RESTART_KEYS for k in touched),
        threshold_changed=any(k in THRESHOLD_KEYS for k in touched),
        ui_changed=any(k in UI_KEYS for k in touched),
    )
