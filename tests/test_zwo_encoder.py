#!/usr/bin/env python3
"""
ZWO Encoder Tests

CRITICAL: the layout rules keep exported files importable by TrainingPeaks.

THE RULES:
1. XML declaration MUST use single quotes: <?xml version='1.0' encoding='UTF-8'?>
2. 2-space indent for metadata tags (author, name, description, sportType)
3. 2-space indent for <workout> tag
4. 4-space indent for workout blocks
5. NO 8-space indents anywhere

Run with: pytest tests/test_zwo_encoder.py -v
"""

import re
import sys
import xml.etree.ElementTree as ET
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from imagetofit.normalizer import normalize
from imagetofit.workout_model import (
    CanonicalWorkout,
    FreeRide,
    IntervalBlock,
    Ramp,
    Steady,
)
from imagetofit.zwo_encoder import (
    UnencodableWorkoutError,
    encode,
    format_power,
    suggested_filename,
)
from imagetofit import zwo_reader


def _sample_workout(**overrides) -> CanonicalWorkout:
    fields = dict(
        name="FTP Test",
        segments=[
            Steady(duration_seconds=600, power_fraction=0.65),
            Ramp(duration_seconds=300, power_fraction_start=0.5, power_fraction_end=0.8),
            IntervalBlock(repeat_count=5, on_duration_seconds=30, on_power_fraction=1.2,
                          off_duration_seconds=15, off_power_fraction=0.5, cadence_target=95),
            FreeRide(duration_seconds=1200),
        ],
    )
    fields.update(overrides)
    return CanonicalWorkout(**fields)


EXPECTED_SAMPLE = """<?xml version='1.0' encoding='UTF-8'?>
<workout_file>
  <author>ImageToFit</author>
  <name>FTP Test</name>
  <description>Converted with ImageToFit</description>
  <sportType>bike</sportType>
  <workout>
    <SteadyState Duration="600" Power="0.65"/>
    <Ramp Duration="300" PowerLow="0.50" PowerHigh="0.80"/>
    <IntervalsT Repeat="5" OnDuration="30" OffDuration="15" OnPower="1.20" OffPower="0.50" Cadence="95"/>
    <FreeRide Duration="1200"/>
  </workout>
</workout_file>
"""


class TestZWOFormat:
    """Test ZWO file format compliance."""

    VALID_PATTERNS = [
        (r'^<\?xml', 'XML declaration at start'),
        (r'^<workout_file>', 'workout_file at column 0'),
        (r'^  <author>', 'author with 2-space indent'),
        (r'^  <name>', 'name with 2-space indent'),
        (r'^  <description>', 'description with 2-space indent'),
        (r'^  <sportType>bike</sportType>', 'sportType bike with 2-space indent'),
        (r'^  <workout>', 'workout with 2-space indent'),
        (r'^    <SteadyState ', 'SteadyState with 4-space indent'),
        (r'^    <IntervalsT ', 'IntervalsT with 4-space indent'),
        (r'^  </workout>', 'closing workout with 2-space indent'),
        (r'^</workout_file>', 'closing workout_file at column 0'),
    ]

    INVALID_PATTERNS = [
        (r'^        <', '8-space indent BREAKS IMPORT'),
        (r'^      <workout>', '6-space indent workout BREAKS IMPORT'),
        (r'^    <workout>', '4-space indent workout BREAKS IMPORT'),
        (r'<\?xml version="1.0"', 'Double quotes in XML declaration MAY break import'),
    ]

    @pytest.fixture
    def content(self) -> str:
        data, _ = encode(_sample_workout())
        return data.decode('utf-8')

    def test_exact_output(self, content):
        """The sample workout renders to the reference document."""
        assert content == EXPECTED_SAMPLE

    def test_required_patterns(self, content):
        for pattern, description in self.VALID_PATTERNS:
            assert re.search(pattern, content, re.MULTILINE), f"Missing: {description}"

    def test_forbidden_patterns(self, content):
        for pattern, description in self.INVALID_PATTERNS:
            assert not re.search(pattern, content, re.MULTILINE), f"Found: {description}"

    def test_trailing_newline(self, content):
        assert content.endswith('</workout_file>\n')

    def test_parses_as_xml(self, content):
        root = ET.fromstring(content.encode('utf-8'))
        assert root.tag == 'workout_file'
        assert [b.tag for b in root.find('workout')] == [
            'SteadyState', 'Ramp', 'IntervalsT', 'FreeRide']


class TestBlocks:
    """Segment to block mapping."""

    def _blocks(self, *segments):
        data, _ = encode(CanonicalWorkout(segments=list(segments)))
        return list(ET.fromstring(data).find('workout'))

    def test_descending_ramp_keeps_start_as_power_low(self):
        (block,) = self._blocks(Ramp(600, 0.75, 0.4))

        assert block.get('PowerLow') == '0.75'
        assert block.get('PowerHigh') == '0.40'

    def test_zero_off_duration_is_emitted(self):
        (block,) = self._blocks(IntervalBlock(4, 40, 1.1, 0, 0.5))
        assert block.get('OffDuration') == '0'

    def test_free_ride_has_no_power(self):
        (block,) = self._blocks(FreeRide(900, cadence_target=85))

        assert block.get('Duration') == '900'
        assert block.get('Cadence') == '85'
        assert not any('Power' in name for name in block.attrib)

    def test_whole_float_durations_render_as_integers(self):
        (block,) = self._blocks(Steady(600.0, 0.7))
        assert block.get('Duration') == '600'


class TestFormatPower:

    @pytest.mark.parametrize("value,expected", [
        (0.65, "0.65"),
        (1.0, "1.00"),
        (1.2, "1.20"),
        (0.9125, "0.9125"),
        (0.875, "0.875"),
        (3, "3.00"),
    ])
    def test_two_to_four_decimals(self, value, expected):
        assert format_power(value) == expected


class TestMetadata:

    def test_placeholders_for_missing_text(self):
        data, filename = encode(_sample_workout(name=None))
        content = data.decode('utf-8')

        assert '<name>Untitled Workout</name>' in content
        assert '<author>ImageToFit</author>' in content
        assert filename == 'workout.zwo'

    def test_text_is_escaped(self):
        data, _ = encode(_sample_workout(name="Over & Under <3", description='Say "go"'))
        content = data.decode('utf-8')

        assert '<name>Over &amp; Under &lt;3</name>' in content
        assert ET.fromstring(data).find('name').text == "Over & Under <3"

    def test_unicode_is_utf8(self):
        data, _ = encode(_sample_workout(name="Schwelle über 20 Minuten"))
        assert "über".encode('utf-8') in data

    def test_run_sport_type(self):
        data, _ = encode(_sample_workout(sport_type='run'))
        assert b'<sportType>run</sportType>' in data

    def test_control_characters_never_reach_the_file(self):
        """Normalized text always encodes to well-formed XML."""
        workout = normalize({"name": "FTP\x01Test",
                             "segments": [{"type": "steady", "duration": 600, "power": 0.7}]}).workout
        data, filename = encode(workout)

        assert ET.fromstring(data).find('name').text == "FTPTest"
        assert filename == "FTPTest.zwo"

    def test_unnormalized_control_characters_are_refused(self):
        with pytest.raises(UnencodableWorkoutError):
            encode(_sample_workout(name="a\x01b"))


class TestFilename:

    @pytest.mark.parametrize("name,expected", [
        ("FTP Test!!", "FTP_Test.zwo"),
        ("  4x8 @ VO2  ", "4x8_VO2.zwo"),
        ("", "workout.zwo"),
        ("!!!", "workout.zwo"),
        (None, "workout.zwo"),
    ])
    def test_suggested_filename(self, name, expected):
        assert suggested_filename(name) == expected

    def test_encode_returns_filename(self):
        _, filename = encode(_sample_workout(name="FTP Test!!"))
        assert filename == "FTP_Test.zwo"


class TestDeterminism:

    def test_equal_input_gives_identical_bytes(self):
        assert encode(_sample_workout()) == encode(_sample_workout())

    def test_round_trip_through_reader(self):
        """A conformant reader recovers the same segments."""
        workout = _sample_workout()
        data, _ = encode(workout)
        decoded = zwo_reader.decode(data)

        assert decoded.segments == workout.segments
        assert decoded.name == workout.name
        assert decoded.sport_type == 'bike'


class TestInvalidWorkouts:
    """The encoder refuses workouts that break invariants."""

    @pytest.mark.parametrize("workout", [
        CanonicalWorkout(segments=[]),
        CanonicalWorkout(segments=[Steady(0, 0.7)]),
        CanonicalWorkout(segments=[Steady(60, 0)]),
        CanonicalWorkout(segments=[Ramp(60, 0.5, float('nan'))]),
        CanonicalWorkout(segments=[IntervalBlock(0, 30, 1.0, 30, 0.5)]),
        CanonicalWorkout(segments=[FreeRide(90000)]),
        CanonicalWorkout(segments=["not a segment"]),
        CanonicalWorkout(segments=[Steady(60, 0.7, cadence_target=float('nan'))]),
        CanonicalWorkout(segments=[IntervalBlock(float('inf'), 30, 1.0, 30, 0.5)]),
    ])
    def test_invalid_workout_raises(self, workout):
        with pytest.raises(UnencodableWorkoutError) as exc_info:
            encode(workout)
        assert exc_info.value.errors, "Violations must be listed"

    def test_error_lists_every_violation(self):
        workout = CanonicalWorkout(segments=[Steady(-1, 0.7), FreeRide(0)])
        with pytest.raises(UnencodableWorkoutError) as exc_info:
            encode(workout)
        assert len(exc_info.value.errors) == 2

    def test_is_value_error(self):
        assert issubclass(UnencodableWorkoutError, ValueError)


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
