#!/usr/bin/env python3
"""
Canonical workout model.

A CanonicalWorkout is an ordered list of segments. A segment is exactly one
of four variants:

- Steady: constant power for a duration
- Ramp: linear power change from start to end (either direction)
- IntervalBlock: repeated on/off pairs, off may be 0 seconds
- FreeRide: rider-controlled effort, no power target

Power values are fractions of threshold power (FTP), durations are seconds.
The normalizer creates these objects, the editor mutates them through the
dict shape below, and the encoder only reads them.
"""

import math
import re
from dataclasses import dataclass, field
from typing import ClassVar, Dict, List, Optional, Union

from imagetofit.constants import (
    MAX_POWER_FRACTION,
    MAX_TOTAL_SECONDS,
    SPORT_TYPE_ALIASES,
    DEFAULT_SPORT_TYPE,
)

# Characters XML 1.0 cannot carry, escaped or not
XML_INVALID_CHARS_RE = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]')


@dataclass
class Steady:
    duration_seconds: int
    power_fraction: float
    cadence_target: Optional[int] = None

    kind: ClassVar[str] = 'steady'

    @property
    def effective_duration(self) -> int:
        return self.duration_seconds


@dataclass
class Ramp:
    duration_seconds: int
    power_fraction_start: float
    power_fraction_end: float
    cadence_target: Optional[int] = None

    kind: ClassVar[str] = 'ramp'

    @property
    def effective_duration(self) -> int:
        return self.duration_seconds


@dataclass
class IntervalBlock:
    repeat_count: int
    on_duration_seconds: int
    on_power_fraction: float
    off_duration_seconds: int
    off_power_fraction: float
    cadence_target: Optional[int] = None

    kind: ClassVar[str] = 'intervalBlock'

    @property
    def effective_duration(self) -> int:
        return self.repeat_count * (self.on_duration_seconds + self.off_duration_seconds)


@dataclass
class FreeRide:
    duration_seconds: int
    cadence_target: Optional[int] = None

    kind: ClassVar[str] = 'freeRide'

    @property
    def effective_duration(self) -> int:
        return self.duration_seconds


Segment = Union[Steady, Ramp, IntervalBlock, FreeRide]

SEGMENT_CLASSES = (Steady, Ramp, IntervalBlock, FreeRide)


@dataclass
class CanonicalWorkout:
    segments: List[Segment] = field(default_factory=list)
    name: Optional[str] = None
    author: Optional[str] = None
    description: Optional[str] = None
    sport_type: str = DEFAULT_SPORT_TYPE

    @property
    def total_duration_seconds(self) -> int:
        return sum(s.effective_duration for s in self.segments)

    def to_dict(self) -> Dict:
        return workout_to_dict(self)


@dataclass
class ValidationResult:
    """Result of an invariant check."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)

    def add_error(self, msg: str):
        self.errors.append(msg)
        self.is_valid = False


# =============================================================================
# DICT (WIRE) SHAPE
# =============================================================================

# (attribute, wire key) per variant, in emission order
_WIRE_FIELDS: Dict[str, List[tuple]] = {
    'steady': [
        ('duration_seconds', 'durationSeconds'),
        ('power_fraction', 'powerFraction'),
    ],
    'ramp': [
        ('duration_seconds', 'durationSeconds'),
        ('power_fraction_start', 'powerFractionStart'),
        ('power_fraction_end', 'powerFractionEnd'),
    ],
    'intervalBlock': [
        ('repeat_count', 'repeatCount'),
        ('on_duration_seconds', 'onDurationSeconds'),
        ('on_power_fraction', 'onPowerFraction'),
        ('off_duration_seconds', 'offDurationSeconds'),
        ('off_power_fraction', 'offPowerFraction'),
    ],
    'freeRide': [
        ('duration_seconds', 'durationSeconds'),
    ],
}

_CLASS_BY_KIND = {cls.kind: cls for cls in SEGMENT_CLASSES}


def segment_to_dict(segment: Segment) -> Dict:
    """Render one segment in the editor's camelCase shape."""
    out = {'type': segment.kind}
    for attr, key in _WIRE_FIELDS[segment.kind]:
        out[key] = getattr(segment, attr)
    if segment.cadence_target is not None:
        out['cadenceTarget'] = segment.cadence_target
    return out


def workout_to_dict(workout: CanonicalWorkout) -> Dict:
    return {
        'name': workout.name,
        'author': workout.author,
        'description': workout.description,
        'sportType': workout.sport_type,
        'segments': [segment_to_dict(s) for s in workout.segments],
    }


def segment_from_dict(data: Dict, index: int = 0) -> Segment:
    """
    Build a segment from the editor's shape.

    Only the shape is checked here; values are left for check_invariants.
    """
    if not isinstance(data, dict):
        raise ValueError(f"Segment {index + 1} must be an object, got {type(data).__name__}")

    kind = data.get('type')
    cls = _CLASS_BY_KIND.get(kind)
    if cls is None:
        raise ValueError(f"Segment {index + 1} has unknown type: {kind!r}")

    kwargs = {}
    for attr, key in _WIRE_FIELDS[kind]:
        if key not in data:
            raise ValueError(f"Segment {index + 1} ({kind}) is missing '{key}'")
        kwargs[attr] = data[key]
    kwargs['cadence_target'] = data.get('cadenceTarget')
    return cls(**kwargs)


def workout_from_dict(data: Dict) -> CanonicalWorkout:
    """Build a CanonicalWorkout from an edited workout payload."""
    if not isinstance(data, dict):
        raise ValueError(f"Workout must be an object, got {type(data).__name__}")

    segments = data.get('segments')
    if not isinstance(segments, list):
        raise ValueError("Workout 'segments' must be a list")

    return CanonicalWorkout(
        segments=[segment_from_dict(s, i) for i, s in enumerate(segments)],
        name=data.get('name'),
        author=data.get('author'),
        description=data.get('description'),
        sport_type=data.get('sportType') or DEFAULT_SPORT_TYPE,
    )


# =============================================================================
# INVARIANTS
# =============================================================================

def short_repr(value) -> str:
    """Short repr of an offending value for messages."""
    try:
        text = repr(value)
    except ValueError:
        # ints past the str conversion digit limit
        return f"<{type(value).__name__}>"
    return text if len(text) <= 40 else text[:37] + '...'


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_whole(value) -> bool:
    """Finite number with no fractional part."""
    if not _is_number(value):
        return False
    if isinstance(value, int):
        return True
    return math.isfinite(value) and value == int(value)


def _check_duration(result: ValidationResult, label: str, value, allow_zero: bool = False):
    if not _is_whole(value):
        result.add_error(f"{label} must be a whole number of seconds, got {short_repr(value)}")
    elif value < 0 or (value == 0 and not allow_zero):
        result.add_error(f"{label} must be {'>= 0' if allow_zero else '> 0'}, got {short_repr(value)}")


def _check_power(result: ValidationResult, label: str, value):
    if not _is_number(value) or (isinstance(value, float) and not math.isfinite(value)):
        result.add_error(f"{label} must be a finite number, got {short_repr(value)}")
    elif not 0 < value <= MAX_POWER_FRACTION:
        result.add_error(f"{label} must be in (0, {MAX_POWER_FRACTION:g}], got {short_repr(value)}")


def check_invariants(workout: CanonicalWorkout) -> ValidationResult:
    """
    Check every document invariant without repairing anything.

    The editing collaborator runs this after field edits; the encoder runs it
    before rendering.
    """
    result = ValidationResult(is_valid=True)

    if not workout.segments:
        result.add_error("Workout has no segments")
        return result

    if workout.sport_type not in list(SPORT_TYPE_ALIASES.values()):
        result.add_error(f"Unsupported sportType: {workout.sport_type!r}")

    for label, value in (('name', workout.name), ('author', workout.author),
                         ('description', workout.description)):
        if value is not None and not isinstance(value, str):
            result.add_error(f"Workout {label} must be text, got {type(value).__name__}")
        elif value is not None and XML_INVALID_CHARS_RE.search(value):
            result.add_error(f"Workout {label} contains characters not allowed in XML")

    durations_ok = True
    for i, segment in enumerate(workout.segments):
        prefix = f"Segment {i + 1}"
        errors_before = len(result.errors)

        if isinstance(segment, Steady):
            _check_duration(result, f"{prefix} durationSeconds", segment.duration_seconds)
            _check_power(result, f"{prefix} powerFraction", segment.power_fraction)
        elif isinstance(segment, Ramp):
            _check_duration(result, f"{prefix} durationSeconds", segment.duration_seconds)
            _check_power(result, f"{prefix} powerFractionStart", segment.power_fraction_start)
            _check_power(result, f"{prefix} powerFractionEnd", segment.power_fraction_end)
        elif isinstance(segment, IntervalBlock):
            count = segment.repeat_count
            if not _is_whole(count) or count < 1:
                result.add_error(f"{prefix} repeatCount must be an integer >= 1, got {short_repr(count)}")
            _check_duration(result, f"{prefix} onDurationSeconds", segment.on_duration_seconds)
            _check_power(result, f"{prefix} onPowerFraction", segment.on_power_fraction)
            _check_duration(result, f"{prefix} offDurationSeconds", segment.off_duration_seconds,
                            allow_zero=True)
            _check_power(result, f"{prefix} offPowerFraction", segment.off_power_fraction)
        elif isinstance(segment, FreeRide):
            _check_duration(result, f"{prefix} durationSeconds", segment.duration_seconds)
        else:
            result.add_error(f"{prefix} is not a workout segment: {type(segment).__name__}")
            durations_ok = False
            continue

        cadence = segment.cadence_target
        if cadence is not None and (not _is_whole(cadence) or cadence <= 0):
            result.add_error(f"{prefix} cadenceTarget must be a positive integer, got {short_repr(cadence)}")

        if len(result.errors) > errors_before:
            durations_ok = False

    if durations_ok:
        total = workout.total_duration_seconds
        if total > MAX_TOTAL_SECONDS:
            result.add_error(f"Total duration {short_repr(int(total))}s exceeds {MAX_TOTAL_SECONDS}s")

    return result
