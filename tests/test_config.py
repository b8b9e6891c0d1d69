"""Tests for relay.config module."""

import pytest

from relay.config import RelayConfig


class TestRelayConfig:
    """Tests for RelayConfig defaults and validation."""

    def test_defaults(self) -> None:
        config = RelayConfig()

        assert config.min_buffer_size == 200
        assert config.flush_delay_ms == 500
        assert config.max_read_lines == 100
        assert config.default_priority == "medium"
        assert config.prioritize_in_progress is True
        assert config.prioritize_by_order is False
        assert config.high_priority_count == 3
        assert config.model is None
        assert config.use_client_fs is True

    @pytest.mark.parametrize(
        "field,value",
        [
            ("min_buffer_size", 0),
            ("flush_delay_ms", -1),
            ("max_read_lines", 0),
        ],
    )
    def test_out_of_range_values_raise(self, field, value) -> None:
        with pytest.raises(ValueError, match=field):
            RelayConfig(**{field: value})

    def test_zero_flush_delay_is_allowed(self) -> None:
        assert RelayConfig(flush_delay_ms=0).flush_delay_ms == 0
