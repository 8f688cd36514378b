#!/usr/bin/env python3
"""
Normalize an untrusted workout document into a CanonicalWorkout.

The document comes from an image-extraction step and may be partial,
mistyped or plain wrong. Structurally recoverable input never raises: each
problem is fixed with a documented fallback and reported as a warning, and
the warnings feed the confidence score. Only input that is not a document at
all raises UnrecoverableInputError.

Each field goes through a small parser that returns a FieldResult
(value, warning, category), so all warning text is produced in one place.

Usage:
    result = normalize({"segments": [{"type": "steady", "duration": 600, "power": 0.7}]})
    workout, warnings, confidence = result
"""

import json
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from imagetofit.constants import (
    DEFAULT_POWER_FRACTION,
    DEFAULT_SPORT_TYPE,
    FALLBACK_DURATION_SECONDS,
    IMPLAUSIBLE_POWER_FRACTION,
    MAX_PERCENT_POWER,
    MAX_POWER_FRACTION,
    MAX_REPEAT_COUNT,
    MAX_TOTAL_SECONDS,
    PLACEHOLDER_DURATION_SECONDS,
    SEGMENT_TYPE_ALIASES,
    SPORT_TYPE_ALIASES,
    WARNING_PENALTIES,
)
from imagetofit.diagnostics import Diagnostics
from imagetofit.logger import get_logger
from imagetofit.workout_model import (
    CanonicalWorkout,
    FreeRide,
    IntervalBlock,
    Ramp,
    Segment,
    Steady,
    XML_INVALID_CHARS_RE,
    short_repr as _show,
    workout_to_dict,
)

log = get_logger()


class UnrecoverableInputError(ValueError):
    """The input is not a decodable workout document."""


@dataclass(frozen=True)
class NormalizationPolicy:
    """Fallback values and limits applied during normalization."""
    fallback_duration_seconds: int = FALLBACK_DURATION_SECONDS
    default_power_fraction: float = DEFAULT_POWER_FRACTION
    placeholder_duration_seconds: int = PLACEHOLDER_DURATION_SECONDS
    max_total_seconds: int = MAX_TOTAL_SECONDS
    implausible_power_fraction: float = IMPLAUSIBLE_POWER_FRACTION
    max_repeat_count: int = MAX_REPEAT_COUNT
    penalties: Dict[str, float] = field(default_factory=lambda: dict(WARNING_PENALTIES))

    @classmethod
    def from_config(cls, config=None) -> 'NormalizationPolicy':
        """Build a policy from the `normalization` section of config.yaml."""
        if config is None:
            from imagetofit.config_loader import get_config
            config = get_config()

        penalties = dict(WARNING_PENALTIES)
        penalties.update(config.get('normalization.penalties', {}) or {})

        return cls(
            fallback_duration_seconds=int(config.get(
                'normalization.fallback_duration_seconds', FALLBACK_DURATION_SECONDS)),
            default_power_fraction=float(config.get(
                'normalization.default_power_fraction', DEFAULT_POWER_FRACTION)),
            placeholder_duration_seconds=int(config.get(
                'normalization.placeholder_duration_seconds', PLACEHOLDER_DURATION_SECONDS)),
            max_total_seconds=int(config.get(
                'normalization.max_total_seconds', MAX_TOTAL_SECONDS)),
            implausible_power_fraction=float(config.get(
                'normalization.implausible_power_fraction', IMPLAUSIBLE_POWER_FRACTION)),
            max_repeat_count=int(config.get(
                'normalization.max_repeat_count', MAX_REPEAT_COUNT)),
            penalties=penalties,
        )


DEFAULT_POLICY = NormalizationPolicy()


class FieldResult(NamedTuple):
    value: Any
    warning: Optional[str] = None
    category: Optional[str] = None


class NormalizationResult(NamedTuple):
    workout: CanonicalWorkout
    warnings: List[str]
    confidence: float

    def to_dict(self) -> Dict:
        return {
            'workout': workout_to_dict(self.workout),
            'warnings': list(self.warnings),
            'confidence': self.confidence,
        }


# =============================================================================
# FIELD ALIASES
# =============================================================================

# Extraction output is loosely named; the canonical wire keys are accepted too
# so a canonical document normalizes without warnings.
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    'type': ('type', 'kind'),
    'duration': ('duration', 'durationSeconds', 'duration_seconds'),
    'power': ('power', 'powerFraction', 'power_fraction'),
    'powerStart': ('powerStart', 'powerLow', 'powerFractionStart', 'power_start', 'power_low'),
    'powerEnd': ('powerEnd', 'powerHigh', 'powerFractionEnd', 'power_end', 'power_high'),
    'repeat': ('repeat', 'repeats', 'repeatCount', 'repeat_count'),
    'onDuration': ('onDuration', 'onDurationSeconds', 'on_duration'),
    'offDuration': ('offDuration', 'offDurationSeconds', 'off_duration'),
    'onPower': ('onPower', 'onPowerFraction', 'on_power'),
    'offPower': ('offPower', 'offPowerFraction', 'off_power'),
    'cadence': ('cadence', 'cadenceTarget', 'cadence_target'),
}

SEGMENT_LIST_KEYS = ('segments', 'steps', 'intervals')

_POWER_FIELDS = ('power', 'powerStart', 'powerEnd', 'onPower', 'offPower')
_INTERVAL_FIELDS = ('repeat', 'onDuration', 'offDuration', 'onPower', 'offPower')

_CLOCK_RE = re.compile(r'^(?:(?P<h>\d{1,6}):)?(?P<m>\d{1,6}):(?P<s>\d{1,2})$')
_UNIT_RE = re.compile(r'^(?P<v>\d+(?:\.\d+)?)\s*(?P<u>s|sec|secs|seconds?|m|min|mins|minutes?|h|hr|hrs|hours?)$')
_RANGE_RE = re.compile(r'^(?P<a>\d+(?:\.\d+)?)\s*(?P<pa>%?)\s*(?:-|–|to)\s*(?P<b>\d+(?:\.\d+)?)\s*(?P<pb>%?)$')

_UNIT_SECONDS = {'s': 1, 'm': 60, 'h': 3600}


def _get(entry: Mapping, name: str) -> Any:
    """First non-None value among a field's aliases."""
    for key in FIELD_ALIASES[name]:
        value = entry.get(key)
        if value is not None:
            return value
    return None


def _has(entry: Mapping, names) -> bool:
    return any(_get(entry, n) is not None for n in names)


# =============================================================================
# SCALAR COERCION
# =============================================================================

def _to_float(raw: Any) -> Optional[float]:
    """Loose number parse. Booleans, non-finite and unrepresentable values are rejected."""
    if isinstance(raw, bool):
        return None
    try:
        if isinstance(raw, (int, float)):
            value = float(raw)
        elif isinstance(raw, str):
            value = float(raw.strip())
        else:
            return None
    except (OverflowError, ValueError):
        return None
    return value if math.isfinite(value) else None


def _seconds_from(raw: Any) -> Optional[float]:
    """Duration in seconds from a number, "mm:ss", "h:mm:ss" or "5min" style text."""
    value = _to_float(raw)
    if value is not None or not isinstance(raw, str):
        return value

    text = raw.strip().lower()
    m = _CLOCK_RE.match(text)
    if m:
        hours = int(m.group('h') or 0)
        return float(hours * 3600 + int(m.group('m')) * 60 + int(m.group('s')))

    m = _UNIT_RE.match(text)
    if m:
        value = _to_float(m.group('v'))
        if value is None:
            return None
        value *= _UNIT_SECONDS[m.group('u')[0]]
        return value if math.isfinite(value) else None
    return None


def _power_from(raw: Any) -> Tuple[Optional[float], bool]:
    """
    Power from a number or "95%" style text.

    Returns (value, is_percent). Percent text is already divided by 100 and
    must not be scaled again.
    """
    if isinstance(raw, str) and raw.strip().endswith('%'):
        value = _to_float(raw.strip()[:-1])
        return (round(value / 100.0, 4) if value is not None else None), True
    return _to_float(raw), False


def _power_range(raw: Any) -> Optional[Tuple[Any, Any]]:
    """Raw (start, end) power from a 2-item list or "88-92%" style text."""
    if isinstance(raw, (list, tuple)) and len(raw) == 2:
        if all(_power_from(v)[0] is not None for v in raw):
            return raw[0], raw[1]
        return None
    if isinstance(raw, str):
        m = _RANGE_RE.match(raw.strip())
        if m:
            suffix = '%' if (m.group('pa') or m.group('pb')) else ''
            return m.group('a') + suffix, m.group('b') + suffix
    return None


# =============================================================================
# FIELD PARSERS
# =============================================================================

def parse_duration(raw: Any, label: str, policy: NormalizationPolicy,
                   field_name: str = 'duration') -> FieldResult:
    """Positive whole seconds, or the fallback duration with a warning."""
    fallback = policy.fallback_duration_seconds
    if raw is None:
        return FieldResult(fallback, f"{label}: missing {field_name}, assumed {fallback}s",
                           'duration_default')

    value = _seconds_from(raw)
    if value is None:
        return FieldResult(fallback, f"{label}: non-numeric {field_name} {_show(raw)}, assumed {fallback}s",
                           'duration_default')

    seconds = int(round(value))
    if seconds <= 0:
        return FieldResult(fallback, f"{label}: non-positive {field_name} {_show(raw)}, assumed {fallback}s",
                           'duration_default')
    return FieldResult(seconds)


def parse_off_duration(raw: Any, label: str, policy: NormalizationPolicy,
                       has_off_power: bool) -> FieldResult:
    """Off duration may be 0; missing means back-to-back unless an off power was given."""
    if raw is None:
        if has_off_power:
            fallback = policy.fallback_duration_seconds
            return FieldResult(fallback, f"{label}: missing offDuration, assumed {fallback}s",
                               'duration_default')
        return FieldResult(0, f"{label}: missing offDuration, assumed 0s (back-to-back repeats)",
                           'duration_default')

    value = _seconds_from(raw)
    if value is None:
        return FieldResult(0, f"{label}: non-numeric offDuration {_show(raw)}, assumed 0s",
                           'duration_default')

    seconds = int(round(value))
    if seconds < 0:
        return FieldResult(0, f"{label}: negative offDuration {_show(raw)}, assumed 0s",
                           'duration_default')
    return FieldResult(seconds)


def parse_power(raw: Any, label: str, policy: NormalizationPolicy,
                field_name: str = 'power') -> FieldResult:
    """Power fraction in (0, 3]; implausibly high values are kept but flagged."""
    default = policy.default_power_fraction
    if raw is None:
        return FieldResult(default, f"{label}: missing {field_name}, assumed {default:g}",
                           'power_default')

    value, is_percent = _power_from(raw)
    if value is None:
        return FieldResult(default, f"{label}: non-numeric {field_name} {_show(raw)}, assumed {default:g}",
                           'power_default')

    if not is_percent and MAX_POWER_FRACTION < value <= MAX_PERCENT_POWER:
        converted = round(value / 100.0, 4)
        return FieldResult(converted,
                           f"{label}: {field_name} {_show(raw)} read as a percentage of FTP ({converted:g})",
                           'ambiguous_field')

    if not 0 < value <= MAX_POWER_FRACTION:
        return FieldResult(default, f"{label}: {field_name} {_show(raw)} out of range, assumed {default:g}",
                           'power_default')

    if value > policy.implausible_power_fraction:
        return FieldResult(value,
                           f"{label}: {field_name} {value:g} is above "
                           f"{policy.implausible_power_fraction:g} x FTP, kept as given",
                           'cosmetic')
    return FieldResult(value)


def parse_cadence(raw: Any, label: str) -> FieldResult:
    """Optional positive integer rpm."""
    if raw is None:
        return FieldResult(None)
    value = _to_float(raw)
    if value is None or int(round(value)) <= 0:
        return FieldResult(None, f"{label}: invalid cadence {_show(raw)} ignored", 'cosmetic')
    return FieldResult(int(round(value)))


def parse_repeat(raw: Any, label: str) -> FieldResult:
    """Repeat count >= 1, inferred as 1 when absent."""
    if raw is None:
        return FieldResult(1, f"{label}: missing repeat count, inferred repeat count 1",
                           'repeat_inferred')
    value = _to_float(raw)
    if value is None:
        return FieldResult(1, f"{label}: non-numeric repeat count {_show(raw)}, inferred repeat count 1",
                           'repeat_inferred')
    count = int(round(value))
    if count < 1:
        return FieldResult(1, f"{label}: repeat count {_show(raw)} below 1, inferred repeat count 1",
                           'repeat_inferred')
    if count != value:
        return FieldResult(count, f"{label}: repeat count {_show(raw)} rounded to {count}", 'cosmetic')
    return FieldResult(count)


def parse_text(raw: Any, label: str) -> FieldResult:
    """Optional metadata text; blank becomes None."""
    if raw is None:
        return FieldResult(None)
    if isinstance(raw, str):
        cleaned = XML_INVALID_CHARS_RE.sub('', raw).strip() or None
        if cleaned != (raw.strip() or None):
            return FieldResult(cleaned, f"workout {label} had control characters, removed", 'cosmetic')
        return FieldResult(cleaned)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool) and _to_float(raw) is not None:
        return FieldResult(str(raw), f"workout {label} was not text, converted", 'cosmetic')
    return FieldResult(None, f"workout {label} of type {type(raw).__name__} ignored", 'cosmetic')


def parse_sport_type(raw: Any) -> FieldResult:
    if raw is None:
        return FieldResult(DEFAULT_SPORT_TYPE)
    sport = SPORT_TYPE_ALIASES.get(raw.strip().lower()) if isinstance(raw, str) else None
    if sport is None:
        return FieldResult(DEFAULT_SPORT_TYPE,
                           f"unsupported sportType {_show(raw)}, assumed {DEFAULT_SPORT_TYPE}", 'cosmetic')
    return FieldResult(sport)


def _record(diag: Diagnostics, result: FieldResult) -> Any:
    """Record the field's warning (if any) and hand back its value."""
    if result.warning:
        diag.warn(result.category, result.warning)
    return result.value


def _record_shared(diag: Diagnostics, results: List[FieldResult],
                   note: Optional[Tuple[str, str]] = None) -> List[Any]:
    """
    Record one warning for values read from the same source field.

    Parser warnings are merged into a single entry; `note` (category, message)
    is recorded only when no parser warned.
    """
    warned = [r for r in results if r.warning]
    if warned:
        diag.warn(warned[0].category, '; '.join(r.warning for r in warned))
    elif note is not None:
        diag.warn(*note)
    return [r.value for r in results]


# =============================================================================
# SEGMENT TYPE RESOLUTION
# =============================================================================

def _infer_kind(entry: Mapping) -> str:
    if _has(entry, _INTERVAL_FIELDS):
        return 'intervalBlock'
    if _has(entry, ('powerStart', 'powerEnd')) or _power_range(_get(entry, 'power')) is not None:
        return 'ramp'
    if _get(entry, 'power') is not None:
        return 'steady'
    return 'freeRide'


def resolve_kind(entry: Mapping, label: str) -> FieldResult:
    """Map the loose `type` string onto one of the four segment kinds."""
    raw = _get(entry, 'type')
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        kind = _infer_kind(entry)
        return FieldResult(kind, f"{label}: missing segment type, inferred {kind}", 'type_coerced')

    key = re.sub(r'[^a-z]', '', raw.lower()) if isinstance(raw, str) else ''
    kind = SEGMENT_TYPE_ALIASES.get(key)
    if kind is not None:
        return FieldResult(kind)

    if _has(entry, _POWER_FIELDS):
        return FieldResult('steady', f"{label}: unknown segment type {_show(raw)}, treated as steady",
                           'type_coerced')
    return FieldResult('freeRide', f"{label}: unknown segment type {_show(raw)}, treated as free ride",
                       'type_coerced')


# =============================================================================
# SEGMENT BUILDERS
# =============================================================================

def _build_steady(entry: Mapping, label: str, policy: NormalizationPolicy,
                  diag: Diagnostics, coerced: bool = False) -> Steady:
    raw_duration = _get(entry, 'duration')
    if raw_duration is None and coerced:
        raw_duration = _get(entry, 'onDuration')
    duration = _record(diag, parse_duration(raw_duration, label, policy))

    raw_power = _get(entry, 'power')
    if raw_power is None and coerced:
        for name in ('onPower', 'powerStart', 'powerEnd'):
            raw_power = _get(entry, name)
            if raw_power is not None:
                break

    span = _power_range(raw_power)
    if span is not None:
        results = [parse_power(v, label, policy) for v in span]
        power = round((results[0].value + results[1].value) / 2.0, 4)
        _record_shared(diag, results,
                       ('cosmetic', f"{label}: power range {_show(raw_power)} averaged to {power:g}"))
    else:
        power = _record(diag, parse_power(raw_power, label, policy))

    cadence = _record(diag, parse_cadence(_get(entry, 'cadence'), label))
    return Steady(duration_seconds=duration, power_fraction=power, cadence_target=cadence)


def _build_ramp(entry: Mapping, label: str, policy: NormalizationPolicy,
                diag: Diagnostics) -> Ramp:
    duration = _record(diag, parse_duration(_get(entry, 'duration'), label, policy))

    raw_start, raw_end = _get(entry, 'powerStart'), _get(entry, 'powerEnd')
    raw_power = _get(entry, 'power')
    if raw_start is None and raw_end is None and raw_power is not None:
        span = _power_range(raw_power)
        if span is not None:
            start, end = _record_shared(diag, [
                parse_power(span[0], label, policy, 'powerStart'),
                parse_power(span[1], label, policy, 'powerEnd'),
            ])
        else:
            (start,) = _record_shared(diag, [parse_power(raw_power, label, policy)], (
                'ambiguous_field',
                f"{label}: ramp has a single power {_show(raw_power)}, used for both ends"))
            end = start
    else:
        start = _record(diag, parse_power(raw_start, label, policy, 'powerStart'))
        end = _record(diag, parse_power(raw_end, label, policy, 'powerEnd'))
    cadence = _record(diag, parse_cadence(_get(entry, 'cadence'), label))
    return Ramp(duration_seconds=duration, power_fraction_start=start,
                power_fraction_end=end, cadence_target=cadence)


def _resolve_ambiguous_number(raw: Any, label: str, policy: NormalizationPolicy,
                              diag: Diagnostics) -> Tuple[Any, Any]:
    """
    A bare `duration` on an interval entry with neither onDuration nor repeat.

    Returns (raw_on_duration, raw_repeat). Duration wins ties.
    """
    value = _seconds_from(raw)
    as_duration = value is not None and 0 < round(value) <= policy.max_total_seconds
    as_count = (value is not None and value == int(value)
                and 1 <= value <= policy.max_repeat_count)

    if as_count and not as_duration:
        diag.warn('ambiguous_field', f"{label}: 'duration' {_show(raw)} read as the repeat count")
        return None, raw
    if as_count and as_duration:
        diag.warn('ambiguous_field',
                  f"{label}: 'duration' {_show(raw)} could be a repeat count or the on-duration, "
                  f"read as on-duration")
    elif as_duration:
        diag.warn('ambiguous_field', f"{label}: on-duration taken from 'duration' {_show(raw)}")
    return raw, None


def _build_interval(entry: Mapping, label: str, policy: NormalizationPolicy,
                    diag: Diagnostics) -> IntervalBlock:
    raw_on = _get(entry, 'onDuration')
    raw_repeat = _get(entry, 'repeat')
    raw_duration = _get(entry, 'duration')

    if raw_on is None and raw_duration is not None:
        if raw_repeat is None:
            raw_on, raw_repeat = _resolve_ambiguous_number(raw_duration, label, policy, diag)
        else:
            diag.warn('ambiguous_field', f"{label}: on-duration taken from 'duration' {_show(raw_duration)}")
            raw_on = raw_duration

    on_duration = _record(diag, parse_duration(raw_on, label, policy, 'onDuration'))
    raw_off_power = _get(entry, 'offPower')
    off_duration = _record(diag, parse_off_duration(
        _get(entry, 'offDuration'), label, policy, raw_off_power is not None))

    # With an explicit onDuration, `duration` can only be the block total
    raw_total = raw_duration if _get(entry, 'onDuration') is not None else None
    total = _seconds_from(raw_total) if raw_total is not None else None
    period = on_duration + off_duration
    total_used = False

    if raw_repeat is None and total is not None and total > 0 and round(total) % period == 0:
        count = int(round(total)) // period
        diag.warn('repeat_inferred',
                  f"{label}: missing repeat count, inferred repeat count {count} "
                  f"from total duration {_show(raw_total)}")
        raw_repeat = count
        total_used = True
    repeat = _record(diag, parse_repeat(raw_repeat, label))

    if raw_total is not None and not total_used and (
            total is None or int(round(total)) != repeat * period):
        diag.warn('ambiguous_field',
                  f"{label}: block total {_show(raw_total)} does not match "
                  f"{repeat} x {period}s, ignored")

    on_power = _record(diag, parse_power(_get(entry, 'onPower') if _get(entry, 'onPower') is not None
                                         else _get(entry, 'power'), label, policy, 'onPower'))
    off_power = _record(diag, parse_power(raw_off_power, label, policy, 'offPower'))
    cadence = _record(diag, parse_cadence(_get(entry, 'cadence'), label))

    return IntervalBlock(
        repeat_count=repeat,
        on_duration_seconds=on_duration,
        on_power_fraction=on_power,
        off_duration_seconds=off_duration,
        off_power_fraction=off_power,
        cadence_target=cadence,
    )


def _build_free_ride(entry: Mapping, label: str, policy: NormalizationPolicy,
                     diag: Diagnostics, coerced: bool = False) -> FreeRide:
    raw_duration = _get(entry, 'duration')
    if raw_duration is None and coerced:
        raw_duration = _get(entry, 'onDuration')
    duration = _record(diag, parse_duration(raw_duration, label, policy))

    if not coerced and _has(entry, _POWER_FIELDS):
        diag.warn('cosmetic', f"{label}: free ride has no power target, power ignored")

    cadence = _record(diag, parse_cadence(_get(entry, 'cadence'), label))
    return FreeRide(duration_seconds=duration, cadence_target=cadence)


def normalize_segment(entry: Mapping, label: str, policy: NormalizationPolicy,
                      diag: Diagnostics) -> Segment:
    """Turn one segment-like mapping into a canonical segment."""
    kind_result = resolve_kind(entry, label)
    kind = _record(diag, kind_result)
    coerced = kind_result.warning is not None and 'unknown segment type' in kind_result.warning

    if kind == 'steady':
        return _build_steady(entry, label, policy, diag, coerced)
    if kind == 'ramp':
        return _build_ramp(entry, label, policy, diag)
    if kind == 'intervalBlock':
        return _build_interval(entry, label, policy, diag)
    return _build_free_ride(entry, label, policy, diag, coerced)


# =============================================================================
# DOCUMENT-LEVEL RULES
# =============================================================================

def _clamp_segment(segment: Segment, budget: int) -> Segment:
    """Shrink a segment so its effective duration fits in budget seconds."""
    if isinstance(segment, IntervalBlock):
        period = segment.on_duration_seconds + segment.off_duration_seconds
        repeats = budget // period
        if repeats >= 1:
            return replace(segment, repeat_count=repeats)
        on = min(segment.on_duration_seconds, budget)
        return replace(segment, repeat_count=1, on_duration_seconds=on,
                       off_duration_seconds=min(segment.off_duration_seconds, budget - on))
    return replace(segment, duration_seconds=budget)


def apply_duration_cap(segments: List[Segment], labels: List[str],
                       policy: NormalizationPolicy, diag: Diagnostics) -> List[Segment]:
    """
    Keep the running total within max_total_seconds.

    The segment that crosses the cap is clamped; segments that no longer fit
    are dropped. Both are reported.
    """
    cap = policy.max_total_seconds
    remaining = cap
    kept: List[Segment] = []

    for segment, label in zip(segments, labels):
        duration = segment.effective_duration
        if duration <= remaining:
            kept.append(segment)
            remaining -= duration
            continue

        if remaining <= 0:
            diag.warn('overflow', f"{label}: dropped, workout already reaches the {cap}s cap")
            continue

        clamped = _clamp_segment(segment, remaining)
        diag.warn('overflow',
                  f"{label}: duration {duration}s exceeds the {cap}s cap, "
                  f"clamped to {clamped.effective_duration}s")
        kept.append(clamped)
        remaining -= clamped.effective_duration

    return kept


def _decode_document(document: Any) -> Mapping:
    if isinstance(document, (bytes, bytearray)):
        try:
            document = document.decode('utf-8')
        except UnicodeDecodeError as e:
            raise UnrecoverableInputError(f"Workout document is not UTF-8 text: {e}") from e

    if isinstance(document, str):
        try:
            document = json.loads(document)
        except (ValueError, RecursionError) as e:
            # also over-long integer literals and deep nesting
            raise UnrecoverableInputError(f"Workout document is not valid JSON: {e}") from e

    if not isinstance(document, Mapping):
        raise UnrecoverableInputError(
            f"Workout document must be an object, got {type(document).__name__}")
    return document


def _first(document: Mapping, *keys: str) -> Any:
    """First non-None value among the given top-level keys."""
    for key in keys:
        value = document.get(key)
        if value is not None:
            return value
    return None


def _segment_entries(document: Mapping) -> List[Any]:
    for key in SEGMENT_LIST_KEYS:
        entries = document.get(key)
        if entries is None:
            continue
        if not isinstance(entries, (list, tuple)):
            raise UnrecoverableInputError(
                f"Workout '{key}' must be a list, got {type(entries).__name__}")
        return list(entries)
    return []


def normalize(document: Any, policy: Optional[NormalizationPolicy] = None) -> NormalizationResult:
    """
    Normalize an untrusted workout document.

    Args:
        document: Mapping, or JSON text/bytes, as produced by the extraction step
        policy: Fallbacks and limits; defaults to the built-in constants

    Returns:
        NormalizationResult(workout, warnings, confidence)

    Raises:
        UnrecoverableInputError: the input is not a workout document at all
    """
    policy = policy or DEFAULT_POLICY
    doc = _decode_document(document)
    entries = _segment_entries(doc)
    diag = Diagnostics()

    if entries and not any(isinstance(e, Mapping) for e in entries):
        raise UnrecoverableInputError("Workout document contains no parseable segments")

    segments: List[Segment] = []
    labels: List[str] = []
    for i, entry in enumerate(entries):
        label = f"Segment {i + 1}"
        if not isinstance(entry, Mapping):
            diag.warn('skipped_entry', f"{label}: not a segment object ({type(entry).__name__}), skipped")
            continue
        segments.append(normalize_segment(entry, label, policy, diag))
        labels.append(label)

    segments = apply_duration_cap(segments, labels, policy, diag)

    if not segments:
        segments = [FreeRide(duration_seconds=policy.placeholder_duration_seconds)]
        diag.warn('empty_structure',
                  f"no workout structure detected, inserted a "
                  f"{policy.placeholder_duration_seconds // 60}-minute free ride")

    workout = CanonicalWorkout(
        segments=segments,
        name=_record(diag, parse_text(_first(doc, 'name', 'title'), 'name')),
        author=_record(diag, parse_text(doc.get('author'), 'author')),
        description=_record(diag, parse_text(doc.get('description'), 'description')),
        sport_type=_record(diag, parse_sport_type(
            _first(doc, 'sportType', 'sport_type', 'sport'))),
    )

    confidence = diag.confidence(policy.penalties)

    for warning in diag.warnings:
        log.debug(warning)
    log.info("Normalized workout", segments=len(workout.segments),
             warnings=len(diag.warnings), confidence=confidence)

    return NormalizationResult(workout, list(diag.warnings), confidence)
