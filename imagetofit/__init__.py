"""
ImageToFit: turn an extracted cycling workout into a Zwift .zwo file.

Modules:
    constants       - policy constants (fallbacks, caps, penalties)
    config_loader   - config.yaml with allowlisted env substitution
    logger          - human / JSON structured logging
    workout_model   - CanonicalWorkout, segments, invariant checks
    diagnostics     - warnings and confidence scoring
    normalizer      - untrusted document -> CanonicalWorkout
    zwo_encoder     - CanonicalWorkout -> .zwo bytes
    zwo_reader      - .zwo bytes -> CanonicalWorkout
"""

from imagetofit.normalizer import NormalizationResult, UnrecoverableInputError, normalize
from imagetofit.workout_model import CanonicalWorkout, check_invariants, workout_from_dict
from imagetofit.zwo_encoder import UnencodableWorkoutError, encode

__version__ = '1.0.0'

__all__ = [
    'CanonicalWorkout',
    'NormalizationResult',
    'UnencodableWorkoutError',
    'UnrecoverableInputError',
    'check_invariants',
    'encode',
    'normalize',
    'workout_from_dict',
]
