#!/usr/bin/env python3
"""
ZWO encoder.

Renders a CanonicalWorkout as a Zwift .zwo file. The layout follows the
TrainingPeaks-safe format: single-quoted XML declaration, 2-space indent for
metadata and <workout>, 4-space indent for blocks, no textevents.

Output is deterministic: the same workout always yields the same bytes.
"""

import html
import re
from typing import List, Optional, Tuple

from imagetofit.constants import (
    DEFAULT_AUTHOR,
    DEFAULT_DESCRIPTION,
    DEFAULT_FILENAME_STEM,
    DEFAULT_WORKOUT_NAME,
    POWER_MAX_DECIMALS,
    POWER_MIN_DECIMALS,
    ZWO_EXTENSION,
)
from imagetofit.logger import get_logger
from imagetofit.workout_model import (
    CanonicalWorkout,
    FreeRide,
    IntervalBlock,
    Ramp,
    Steady,
    check_invariants,
)

log = get_logger()


ZWO_TEMPLATE = """<?xml version='1.0' encoding='UTF-8'?>
<workout_file>
  <author>{author}</author>
  <name>{name}</name>
  <description>{description}</description>
  <sportType>{sport_type}</sportType>
  <workout>
{blocks}  </workout>
</workout_file>
"""


class UnencodableWorkoutError(ValueError):
    """A workout that violates its invariants reached the encoder."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Workout cannot be encoded: " + "; ".join(self.errors))


def format_power(value: float) -> str:
    """FTP fraction with 2 to 4 decimals: 0.65 -> "0.65", 0.9125 -> "0.9125"."""
    text = f"{value:.{POWER_MAX_DECIMALS}f}"
    whole, frac = text.split('.')
    frac = frac.rstrip('0').ljust(POWER_MIN_DECIMALS, '0')
    return f"{whole}.{frac}"


def _cadence_attr(cadence: Optional[int]) -> str:
    return f' Cadence="{int(cadence)}"' if cadence is not None else ''


# =============================================================================
# BLOCK GENERATION
# =============================================================================

def generate_steady_state_block(duration: int, power: float, cadence: Optional[int] = None) -> str:
    return (
        f'    <SteadyState Duration="{int(duration)}" '
        f'Power="{format_power(power)}"{_cadence_attr(cadence)}/>\n'
    )


def generate_ramp_block(duration: int, power_start: float, power_end: float,
                        cadence: Optional[int] = None) -> str:
    """
    Generate a ramp block.

    PowerLow is always the start power and PowerHigh the end power, so a
    descending ramp has PowerLow > PowerHigh.
    """
    return (
        f'    <Ramp Duration="{int(duration)}" '
        f'PowerLow="{format_power(power_start)}" '
        f'PowerHigh="{format_power(power_end)}"{_cadence_attr(cadence)}/>\n'
    )


def generate_intervals_block(repeats: int, on_duration: int, off_duration: int,
                             on_power: float, off_power: float,
                             cadence: Optional[int] = None) -> str:
    """
    Generate one IntervalsT block for the whole repeat set.

    OffDuration is emitted even when it is 0 (back-to-back repeats).
    """
    return (
        f'    <IntervalsT Repeat="{int(repeats)}" '
        f'OnDuration="{int(on_duration)}" OffDuration="{int(off_duration)}" '
        f'OnPower="{format_power(on_power)}" OffPower="{format_power(off_power)}"'
        f'{_cadence_attr(cadence)}/>\n'
    )


def generate_free_ride_block(duration: int, cadence: Optional[int] = None) -> str:
    return f'    <FreeRide Duration="{int(duration)}"{_cadence_attr(cadence)}/>\n'


def generate_block(segment) -> str:
    if isinstance(segment, Steady):
        return generate_steady_state_block(
            segment.duration_seconds, segment.power_fraction, segment.cadence_target)
    if isinstance(segment, Ramp):
        return generate_ramp_block(
            segment.duration_seconds, segment.power_fraction_start,
            segment.power_fraction_end, segment.cadence_target)
    if isinstance(segment, IntervalBlock):
        return generate_intervals_block(
            segment.repeat_count, segment.on_duration_seconds, segment.off_duration_seconds,
            segment.on_power_fraction, segment.off_power_fraction, segment.cadence_target)
    if isinstance(segment, FreeRide):
        return generate_free_ride_block(segment.duration_seconds, segment.cadence_target)
    raise UnencodableWorkoutError([f"Not a workout segment: {type(segment).__name__}"])


# =============================================================================
# FILE GENERATION
# =============================================================================

def suggested_filename(name: Optional[str]) -> str:
    """
    Filesystem-safe filename for a workout name.

    >>> suggested_filename("FTP Test!!")
    'FTP_Test.zwo'
    """
    stem = re.sub(r'[^A-Za-z0-9]+', '_', name or '').strip('_')
    return f"{stem or DEFAULT_FILENAME_STEM}{ZWO_EXTENSION}"


def _text(value: Optional[str], placeholder: str) -> str:
    if value is None or not value.strip():
        value = placeholder
    return html.escape(value, quote=False)


def render(workout: CanonicalWorkout) -> str:
    """Render the .zwo document as text. The workout must already be valid."""
    blocks = ''.join(generate_block(s) for s in workout.segments)
    return ZWO_TEMPLATE.format(
        author=_text(workout.author, DEFAULT_AUTHOR),
        name=_text(workout.name, DEFAULT_WORKOUT_NAME),
        description=_text(workout.description, DEFAULT_DESCRIPTION),
        sport_type=html.escape(workout.sport_type, quote=False),
        blocks=blocks,
    )


def encode(workout: CanonicalWorkout) -> Tuple[bytes, str]:
    """
    Encode a workout as .zwo bytes.

    Returns:
        (UTF-8 bytes, suggested filename)

    Raises:
        UnencodableWorkoutError: the workout violates its invariants
    """
    result = check_invariants(workout)
    if not result.is_valid:
        log.debug("Refusing to encode invalid workout", errors=len(result.errors))
        raise UnencodableWorkoutError(result.errors)

    data = render(workout).encode('utf-8')
    filename = suggested_filename(workout.name)
    log.debug("Encoded workout", filename=filename, segments=len(workout.segments), size=len(data))
    return data, filename
