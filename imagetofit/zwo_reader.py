#!/usr/bin/env python3
"""
ZWO reader.

Parses a .zwo file back into a CanonicalWorkout. Used to check that encoder
output survives a round trip through a conformant reader, and to load .zwo
files exported by other tools.
"""

import xml.etree.ElementTree as ET
from typing import Optional, Union

from imagetofit.constants import DEFAULT_SPORT_TYPE
from imagetofit.workout_model import (
    CanonicalWorkout,
    FreeRide,
    IntervalBlock,
    Ramp,
    Segment,
    Steady,
)


def _attr(elem: ET.Element, name: str, cast=float, required: bool = True):
    raw = elem.get(name)
    if raw is None:
        if required:
            raise ValueError(f"<{elem.tag}> is missing the {name} attribute")
        return None
    try:
        return cast(raw)
    except ValueError as e:
        raise ValueError(f"<{elem.tag}> has a non-numeric {name}: {raw!r}") from e


def _seconds(raw: str) -> int:
    return int(round(float(raw)))


def _cadence(elem: ET.Element) -> Optional[int]:
    return _attr(elem, 'Cadence', _seconds, required=False)


def _block_to_segment(elem: ET.Element) -> Segment:
    tag = elem.tag
    if tag == 'SteadyState':
        return Steady(
            duration_seconds=_attr(elem, 'Duration', _seconds),
            power_fraction=_attr(elem, 'Power'),
            cadence_target=_cadence(elem),
        )
    if tag in ('Ramp', 'Warmup', 'Cooldown'):
        return Ramp(
            duration_seconds=_attr(elem, 'Duration', _seconds),
            power_fraction_start=_attr(elem, 'PowerLow'),
            power_fraction_end=_attr(elem, 'PowerHigh'),
            cadence_target=_cadence(elem),
        )
    if tag == 'IntervalsT':
        return IntervalBlock(
            repeat_count=_attr(elem, 'Repeat', _seconds),
            on_duration_seconds=_attr(elem, 'OnDuration', _seconds),
            on_power_fraction=_attr(elem, 'OnPower'),
            off_duration_seconds=_attr(elem, 'OffDuration', _seconds),
            off_power_fraction=_attr(elem, 'OffPower'),
            cadence_target=_cadence(elem),
        )
    if tag in ('FreeRide', 'MaxEffort'):
        return FreeRide(
            duration_seconds=_attr(elem, 'Duration', _seconds),
            cadence_target=_cadence(elem),
        )
    raise ValueError(f"Unknown workout block: <{tag}>")


def _text(root: ET.Element, tag: str) -> Optional[str]:
    elem = root.find(tag)
    if elem is None or elem.text is None:
        return None
    return elem.text.strip() or None


def decode(data: Union[bytes, str]) -> CanonicalWorkout:
    """
    Parse .zwo content.

    Raises:
        ValueError: invalid XML, wrong root element, missing <workout>, or an
            unknown block element
    """
    if isinstance(data, str):
        data = data.encode('utf-8')
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise ValueError(f"Invalid ZWO XML: {e}") from e

    if root.tag != 'workout_file':
        raise ValueError(f"Expected <workout_file> root, got <{root.tag}>")

    workout_elem = root.find('workout')
    if workout_elem is None:
        raise ValueError("ZWO file has no <workout> element")

    return CanonicalWorkout(
        segments=[_block_to_segment(child) for child in workout_elem],
        name=_text(root, 'name'),
        author=_text(root, 'author'),
        description=_text(root, 'description'),
        sport_type=_text(root, 'sportType') or DEFAULT_SPORT_TYPE,
    )
