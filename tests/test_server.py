"""
Local API Server Tests
======================
Exercises triage_server.py through FastAPI's TestClient.

Run with: python -m pytest tests/ -v
"""

from __future__ import annotations

import sys
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import triage_server


class TestTriageServer(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls._client_cm = TestClient(triage_server.app)
        cls.client = cls._client_cm.__enter__()

    @classmethod
    def tearDownClass(cls):
        cls._client_cm.__exit__(None, None, None)

    def test_status_after_startup(self):
        response = self.client.get("/api/status")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["initialized"])
        self.assertGreater(body["knowledge_base_size"], 0)

    def test_analyze_common_cold(self):
        response = self.client.post("/api/analyze", json={
            "symptoms": [
                {"code": "cough", "severity": 4},
                {"code": "sore_throat", "severity": 3},
                {"code": "headache", "severity": 2},
            ],
            "age": 30,
            "gender": "female",
        })
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["urgency_level"], "LOW")
        self.assertEqual(body["triage_path"], "RULE_ENGINE")
        self.assertTrue(any("Common Cold" in c["condition"] for c in body["candidates"]))

    def test_analyze_critical_oxygen(self):
        response = self.client.post("/api/analyze", json={
            "symptoms": [],
            "vitals": {"oxygenSaturation": 85},
        })
        body = response.json()
        self.assertEqual(body["urgency_level"], "EMERGENCY")
        self.assertTrue(body["requires_clinician"])
        self.assertTrue(body["emergency_actions"])

    def test_analyze_malformed_entries(self):
        response = self.client.post("/api/analyze", json={"symptoms": [None, 3, {"foo": "bar"}]})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["triage_path"], "ADVISORY")

    def test_interactions(self):
        response = self.client.post("/api/interactions", json={"medicines": ["Warfarin", "Aspirin"]})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["found"])
        self.assertEqual(body["interactions"][0]["severity"], "MAJOR")


if __name__ == "__main__":
    unittest.main(verbosity=2)
