#!/usr/bin/env python3
"""
Single source of truth for constants used across ImageToFit.

Normalization policy values live here so the normalizer, the encoder and the
config loader agree on them. Every policy value can be overridden from the
`normalization` section of config.yaml.
"""

from typing import Dict


# === NORMALIZATION FALLBACKS ===

FALLBACK_DURATION_SECONDS: int = 60        # Missing or non-positive duration
DEFAULT_POWER_FRACTION: float = 0.65       # Easy endurance when power is missing
PLACEHOLDER_DURATION_SECONDS: int = 600    # Free ride inserted for empty extractions
MAX_TOTAL_SECONDS: int = 24 * 60 * 60      # Hard cap on total workout duration


# === POWER BOUNDS (fraction of FTP) ===

MAX_POWER_FRACTION: float = 3.0            # Upper bound of the valid range (0, 3]
IMPLAUSIBLE_POWER_FRACTION: float = 1.5    # Kept, but flagged
MAX_PERCENT_POWER: float = 300.0           # 3 < value <= 300 is read as a percentage


# === INTERVAL BOUNDS ===

MAX_REPEAT_COUNT: int = 100                # Upper bound when a field may be a repeat count


# === CONFIDENCE PENALTIES ===
# One penalty per recorded warning. Duration defaults weigh more than
# cosmetic fixes.

WARNING_PENALTIES: Dict[str, float] = {
    'duration_default': 0.15,
    'power_default': 0.10,
    'type_coerced': 0.10,
    'overflow': 0.15,
    'empty_structure': 0.50,
    'skipped_entry': 0.10,
    'repeat_inferred': 0.05,
    'ambiguous_field': 0.05,
    'cosmetic': 0.02,
}


# === SEGMENT TYPES ===
# Keys are lowercase with separators removed.

SEGMENT_TYPE_ALIASES: Dict[str, str] = {
    'steady': 'steady',
    'steadystate': 'steady',
    'ramp': 'ramp',
    'warmup': 'ramp',
    'cooldown': 'ramp',
    'interval': 'intervalBlock',
    'intervals': 'intervalBlock',
    'intervalst': 'intervalBlock',
    'intervalblock': 'intervalBlock',
    'repeat': 'intervalBlock',
    'freeride': 'freeRide',
    'free': 'freeRide',
    'maxeffort': 'freeRide',
}


# === SPORT TYPES ===

DEFAULT_SPORT_TYPE: str = 'bike'

SPORT_TYPE_ALIASES: Dict[str, str] = {
    'bike': 'bike',
    'cycling': 'bike',
    'ride': 'bike',
    'run': 'run',
    'running': 'run',
}


# === ZWO OUTPUT ===

ZWO_EXTENSION: str = '.zwo'
DEFAULT_FILENAME_STEM: str = 'workout'
DEFAULT_WORKOUT_NAME: str = 'Untitled Workout'
DEFAULT_AUTHOR: str = 'ImageToFit'
DEFAULT_DESCRIPTION: str = 'Converted with ImageToFit'

# Power attributes carry between 2 and 4 decimals
POWER_MIN_DECIMALS: int = 2
POWER_MAX_DECIMALS: int = 4
