"""Test suite for the campus geofence service."""
