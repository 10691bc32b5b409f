"""
Unit tests for chip configuration.
"""

import pytest

from siliconflow.config import DEFAULT_CHIP_CONFIG, SMALL_CHIP_CONFIG, ChipConfig


class TestChipConfig:
    """Test configuration defaults and validation."""

    def test_defaults(self):
        config = ChipConfig()
        assert config.core_count == 8
        assert config.num_warps == 12
        assert config.warp_size == 32
        assert config.phase_length == 4
        assert config.warp_id_bits == 4
        assert config == DEFAULT_CHIP_CONFIG

    def test_small_config(self):
        assert SMALL_CHIP_CONFIG.core_count == 4
        assert SMALL_CHIP_CONFIG.num_warps == 6
        assert SMALL_CHIP_CONFIG.warp_id_bits == 3

    def test_single_warp_id_bits(self):
        assert ChipConfig(num_warps=1).warp_id_bits == 1

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"core_count": 0},
            {"num_warps": 0},
            {"warp_size": 0},
            {"phase_period": 10},
            {"min_temp_c": 120.0},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            ChipConfig(**kwargs)
