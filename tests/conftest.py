from __future__ import annotations

import pytest

from livetrafik.config import RelayConfig


@pytest.fixture
def config() -> RelayConfig:
    return RelayConfig(
        supabase_url="wss://example.supabase.co/realtime/v1/websocket",
        supabase_anon_key="anon-key",
        regions="ul",
        vehicle_types="bus,train",
    )
