#!/usr/bin/env python3
"""
Tests for the ImageToFit Web App.

Run with: pytest webapp/tests/test_webapp.py -v
"""

import os
import sys
import xml.etree.ElementTree as ET
from pathlib import Path

import pytest

# Set test environment before importing
os.environ['FLASK_ENV'] = 'test'

# Add webapp directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))


CLEAN_WORKOUT = {
    "name": "FTP Test!!",
    "author": None,
    "description": None,
    "sportType": "bike",
    "segments": [
        {"type": "steady", "durationSeconds": 600, "powerFraction": 0.65},
        {"type": "intervalBlock", "repeatCount": 5, "onDurationSeconds": 30,
         "onPowerFraction": 1.2, "offDurationSeconds": 15, "offPowerFraction": 0.5},
    ],
}


@pytest.fixture
def app():
    """Create test Flask app."""
    from app import app
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


class TestParseEndpoint:
    """POST /api/workouts/parse"""

    def test_parse_returns_workout_warnings_confidence(self, client):
        """A loose document comes back normalized with diagnostics."""
        response = client.post('/api/workouts/parse', json={
            "name": "Threshold",
            "segments": [{"type": "interval", "onDuration": 30, "onPower": 1.2,
                          "offDuration": 15, "offPower": 0.5}],
        })
        assert response.status_code == 200

        data = response.get_json()
        assert set(data) == {"workout", "warnings", "confidence"}
        assert data["workout"]["segments"][0]["repeatCount"] == 1
        assert any("inferred repeat count" in w for w in data["warnings"])
        assert data["confidence"] < 1.0

    def test_parse_accepts_document_wrapper(self, client):
        response = client.post('/api/workouts/parse', json={"document": {"segments": []}})
        assert response.status_code == 200

        data = response.get_json()
        assert data["workout"]["segments"] == [{"type": "freeRide", "durationSeconds": 600}]

    def test_clean_document_has_full_confidence(self, client):
        response = client.post('/api/workouts/parse', json=CLEAN_WORKOUT)
        data = response.get_json()

        assert data["warnings"] == []
        assert data["confidence"] == 1.0

    def test_unrecoverable_document_is_422(self, client):
        response = client.post('/api/workouts/parse', json=[1, 2, 3])
        assert response.status_code == 422
        assert "error" in response.get_json()

    def test_non_json_body_is_400(self, client):
        response = client.post('/api/workouts/parse', data="not json", content_type='text/plain')
        assert response.status_code == 400

    def test_get_not_allowed(self, client):
        response = client.get('/api/workouts/parse')
        assert response.status_code == 405


class TestExportEndpoint:
    """POST /api/workouts/export/zwo"""

    def test_export_returns_zwo_attachment(self, client):
        response = client.post('/api/workouts/export/zwo', json={"workout": CLEAN_WORKOUT})
        assert response.status_code == 200

        assert response.mimetype == 'application/xml'
        assert response.headers['Content-Disposition'] == 'attachment; filename="FTP_Test.zwo"'
        assert response.data.startswith(b"<?xml version='1.0' encoding='UTF-8'?>")

        root = ET.fromstring(response.data)
        assert [b.tag for b in root.find('workout')] == ['SteadyState', 'IntervalsT']

    def test_export_is_deterministic(self, client):
        first = client.post('/api/workouts/export/zwo', json={"workout": CLEAN_WORKOUT})
        second = client.post('/api/workouts/export/zwo', json={"workout": CLEAN_WORKOUT})
        assert first.data == second.data

    def test_parse_then_export(self, client):
        """Parsed output can be exported as-is."""
        parsed = client.post('/api/workouts/parse', json={
            "segments": [{"type": "warmup", "duration": "10:00", "power": "50-75%"}],
        }).get_json()

        response = client.post('/api/workouts/export/zwo', json={"workout": parsed["workout"]})
        assert response.status_code == 200
        assert b'<Ramp Duration="600" PowerLow="0.50" PowerHigh="0.75"/>' in response.data
        assert 'filename="workout.zwo"' in response.headers['Content-Disposition']

    @pytest.mark.parametrize("body", [
        {},
        {"workout": None},
        {"workout": {"segments": [{"type": "sprint"}]}},
        {"workout": {"segments": "nope"}},
    ])
    def test_malformed_workout_is_400(self, client, body):
        response = client.post('/api/workouts/export/zwo', json=body)
        assert response.status_code == 400

    def test_invalid_values_are_500_with_single_message(self, client):
        """Invariant violations after editing surface as one user-facing error."""
        workout = dict(CLEAN_WORKOUT, segments=[
            {"type": "steady", "durationSeconds": 0, "powerFraction": 0.65},
        ])
        response = client.post('/api/workouts/export/zwo', json={"workout": workout})

        assert response.status_code == 500
        data = response.get_json()
        assert list(data) == ["error"]
        assert "could not be exported" in data["error"]

    def test_non_finite_cadence_is_500_not_a_crash(self, client):
        body = ('{"workout": {"segments": [{"type": "steady", "durationSeconds": 60, '
                '"powerFraction": 0.7, "cadenceTarget": NaN}]}}')
        response = client.post('/api/workouts/export/zwo', data=body,
                               content_type='application/json')

        assert response.status_code == 500
        assert "could not be exported" in response.get_json()["error"]


class TestFlaskApp:
    """General app behavior."""

    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.get_json() == {"status": "ok"}

    def test_security_headers_present(self, client):
        """Security headers are set on responses."""
        response = client.get('/health')

        assert response.headers.get('X-Content-Type-Options') == 'nosniff'
        assert response.headers.get('X-Frame-Options') == 'DENY'
        assert response.headers.get('X-XSS-Protection') == '1; mode=block'

    def test_404_handler(self, client):
        """404 handler returns JSON."""
        response = client.get('/nonexistent/route/12345')
        assert response.status_code == 404
        assert response.get_json() == {"error": "Not found"}

    def test_max_content_length_from_config(self, app):
        assert app.config['MAX_CONTENT_LENGTH'] == 1024 * 1024


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
