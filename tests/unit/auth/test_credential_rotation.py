"""
Unit tests for CredentialRotationMonitor.

Usage:
    pytest tests/unit/auth/test_credential_rotation.py
"""

import asyncio
from datetime import timedelta

import pytest

from brale_core.auth import (
    CredentialRotationMonitor,
    Credentials,
    InMemoryRotationProvider,
    ProviderMetadata,
    RotationConfig,
    RotationEventType,
    RotationProvider,
    RotationStatus,
)

CLIENT_ID = "client_live_8f3a2c"


class RejectingProvider(RotationProvider):
    """Provider whose new credentials never validate."""

    async def fetch_new_credentials(self) -> Credentials:
        return Credentials("client_live_rejected", "r" * 32)

    async def validate_credentials(self, credentials: Credentials) -> bool:
        return False


class TestRotationStatus:
    """Test age classification."""

    # ================================================================
    # Helper Methods
    # ================================================================

    def _enable(self, date_clock, days_ago, expires_in_days=None, listener=None):
        monitor = CredentialRotationMonitor(clock=date_clock)
        if listener is not None:
            monitor.add_listener(listener)
        metadata = ProviderMetadata(
            last_rotated=date_clock() - timedelta(days=days_ago),
            expires_at=(
                date_clock() + timedelta(days=expires_in_days)
                if expires_in_days is not None
                else None
            ),
        )
        monitor.enable(
            InMemoryRotationProvider(metadata=metadata),
            RotationConfig(),
            client_id=CLIENT_ID,
        )
        return monitor

    # ================================================================
    # Test Methods
    # ================================================================

    def test_disabled_status(self, date_clock):
        monitor = CredentialRotationMonitor(clock=date_clock)

        status = monitor.get_rotation_status()

        assert status.enabled is False
        assert status.status is None

    @pytest.mark.parametrize(
        "days_ago,expected",
        [
            (10, RotationStatus.HEALTHY),
            (60, RotationStatus.WARNING),
            (83, RotationStatus.URGENT),
            (90, RotationStatus.EXPIRED),
            (120, RotationStatus.EXPIRED),
        ],
    )
    def test_status_thresholds(self, date_clock, days_ago, expected):
        """Test healthy / warning (30d) / urgent (7d) / expired (90d)."""
        monitor = self._enable(date_clock, days_ago)

        status = monitor.get_rotation_status()

        assert status.enabled is True
        assert status.status == expected
        assert status.days_since_last_rotation == days_ago
        assert status.days_until_expiration == 90 - days_ago

    def test_partial_days_round_up(self, date_clock):
        monitor = self._enable(date_clock, 10.5)

        assert monitor.get_rotation_status().days_since_last_rotation == 11

    def test_provider_expiry_shortens_remaining_days(self, date_clock):
        """Test explicit expires_at wins when earlier than max age."""
        monitor = self._enable(date_clock, 10, expires_in_days=5)

        status = monitor.get_rotation_status()

        assert status.days_until_expiration == 5
        assert status.status == RotationStatus.URGENT

    def test_status_tracks_clock(self, date_clock):
        monitor = self._enable(date_clock, 0)
        assert monitor.get_rotation_status().status == RotationStatus.HEALTHY

        date_clock.advance(61)

        assert monitor.get_rotation_status().status == RotationStatus.WARNING

    def test_credential_id_is_masked(self, date_clock):
        monitor = self._enable(date_clock, 0)

        assert monitor.metadata.credential_id == "clie**********3a2c"
        assert CLIENT_ID not in repr(Credentials(CLIENT_ID, "x" * 32))


class TestRotationEvents:
    """Test check_rotation_needs events."""

    def _enable(self, date_clock, days_ago, events):
        monitor = CredentialRotationMonitor(clock=date_clock)
        monitor.add_listener(events.append)
        monitor.enable(
            InMemoryRotationProvider(
                metadata=ProviderMetadata(
                    last_rotated=date_clock() - timedelta(days=days_ago)
                )
            ),
            client_id=CLIENT_ID,
        )
        return monitor

    @pytest.mark.parametrize(
        "days_ago,event_type",
        [
            (60, RotationEventType.WARNING),
            (85, RotationEventType.URGENT),
            (95, RotationEventType.ROTATION_NEEDED),
        ],
    )
    def test_enable_emits_event_for_aging_credentials(
        self, date_clock, days_ago, event_type
    ):
        events = []

        self._enable(date_clock, days_ago, events)

        assert [e.type for e in events] == [event_type]
        assert events[0].credential_id == "clie**********3a2c"
        assert events[0].timestamp == date_clock()

    def test_healthy_credentials_emit_nothing(self, date_clock):
        events = []
        monitor = self._enable(date_clock, 1, events)

        assert monitor.check_rotation_needs() is None
        assert events == []

    def test_failing_listener_does_not_block_others(self, date_clock):
        events = []
        monitor = CredentialRotationMonitor(clock=date_clock)

        def broken(event):
            raise RuntimeError("listener bug")

        monitor.add_listener(broken)
        monitor.add_listener(events.append)
        monitor.enable(
            InMemoryRotationProvider(
                metadata=ProviderMetadata(
                    last_rotated=date_clock() - timedelta(days=60)
                )
            ),
            client_id=CLIENT_ID,
        )

        assert len(events) == 1

    def test_disable_removes_listeners(self, date_clock):
        events = []
        monitor = self._enable(date_clock, 1, events)

        monitor.disable()

        assert monitor.enabled is False
        assert monitor.check_rotation_needs() is None
        assert events == []


class TestRotateCredentials:
    """Test rotate_credentials."""

    async def test_successful_rotation(self, date_clock):
        events = []
        new_credentials = Credentials("client_live_rotated", "n" * 32)
        monitor = CredentialRotationMonitor(clock=date_clock)
        monitor.add_listener(events.append)
        monitor.enable(
            InMemoryRotationProvider(
                new_credentials,
                ProviderMetadata(last_rotated=date_clock() - timedelta(days=10)),
            ),
            client_id=CLIENT_ID,
        )

        rotated = await monitor.rotate_credentials()

        assert rotated == new_credentials
        assert [e.type for e in events] == [
            RotationEventType.ROTATION_STARTED,
            RotationEventType.ROTATION_COMPLETED,
        ]
        assert events[1].context["old_credential_id"] == "clie**********3a2c"
        assert monitor.metadata.credential_id == "clie***********ated"
        assert monitor.get_rotation_status().days_since_last_rotation == 0
        monitor.disable()

    async def test_no_new_credentials_fails(self, date_clock):
        events = []
        monitor = CredentialRotationMonitor(clock=date_clock)
        monitor.add_listener(events.append)
        monitor.enable(InMemoryRotationProvider(), client_id=CLIENT_ID)

        with pytest.raises(RuntimeError):
            await monitor.rotate_credentials()

        assert [e.type for e in events] == [
            RotationEventType.ROTATION_STARTED,
            RotationEventType.ROTATION_FAILED,
        ]
        assert "error" in events[1].context
        monitor.disable()

    async def test_invalid_new_credentials_fail(self, date_clock):
        monitor = CredentialRotationMonitor(clock=date_clock)
        monitor.enable(RejectingProvider(), client_id=CLIENT_ID)

        with pytest.raises(RuntimeError, match="failed validation"):
            await monitor.rotate_credentials()

        assert monitor.metadata.credential_id == "clie**********3a2c"
        monitor.disable()

    async def test_rotate_requires_enable(self, date_clock):
        monitor = CredentialRotationMonitor(clock=date_clock)

        with pytest.raises(RuntimeError, match="not enabled"):
            await monitor.rotate_credentials()

    async def test_enable_starts_periodic_checks(self, date_clock):
        monitor = CredentialRotationMonitor(clock=date_clock)
        monitor.enable(InMemoryRotationProvider(), client_id=CLIENT_ID)

        task = monitor._check_task
        assert task is not None and not task.done()

        monitor.disable()
        await asyncio.sleep(0)
        assert task.cancelled()
