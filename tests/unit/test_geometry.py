"""
Unit tests for the device geometry.

Tests the DeviceGeometry dataclass and block/marker offset calculations.
"""

import pytest
from bbm_inspector.core import (
    DeviceGeometry,
    get_standard_nand512_geometry,
    validate_image_size,
    get_geometry_summary,
)


class TestDeviceGeometry:
    """Test DeviceGeometry dataclass."""

    def test_standard_geometry(self):
        """Test the NAND512W3A2C layout."""
        geometry = get_standard_nand512_geometry()

        assert geometry.number_of_blocks == 4096
        assert geometry.pages_per_block == 32
        assert geometry.bytes_per_page == 528
        assert geometry.bytes_per_block == 16896
        assert geometry.total_bytes == 69206016
        assert geometry.is_nand512()

    def test_factory_marker_offset(self):
        """Marker is byte 5 of the spare area of page 0."""
        geometry = DeviceGeometry()

        assert geometry.factory_marker_offset == 517

    def test_geometry_is_immutable(self):
        """Geometry is fixed configuration."""
        geometry = DeviceGeometry()

        with pytest.raises(Exception):
            geometry.number_of_blocks = 2048

    def test_other_geometry_is_not_nand512(self):
        """A different block count is not the NAND512 layout."""
        assert not DeviceGeometry(number_of_blocks=2048).is_nand512()


class TestOffsetCalculations:
    """Test block and marker offset calculations."""

    @pytest.fixture
    def geometry(self):
        """Standard NAND512 geometry fixture."""
        return DeviceGeometry()

    def test_marker_offsets(self, geometry):
        """Test marker offsets of the first, a middle and the last block."""
        assert geometry.marker_offset(0) == 517
        assert geometry.marker_offset(3) == 51205
        assert geometry.marker_offset(4095) == 4095 * 16896 + 517

    def test_block_of_offset(self, geometry):
        """Test mapping offsets back to blocks."""
        assert geometry.block_of(0) == 0
        assert geometry.block_of(16895) == 0
        assert geometry.block_of(16896) == 1
        assert geometry.block_of(geometry.total_bytes - 1) == 4095

    def test_reserved_area(self, geometry):
        """Reserved area is the last 96 blocks."""
        assert geometry.reserved_area_start == 4000

    def test_reserved_block_for_slot(self, geometry):
        """Map slots count reserved blocks from the end of the device."""
        assert geometry.reserved_block_for_slot(0) == 4095
        assert geometry.reserved_block_for_slot(95) == 4000

    def test_all_slots_map_into_reserved_area(self, geometry):
        """Every map slot refers to a distinct reserved block."""
        blocks = {geometry.reserved_block_for_slot(i) for i in range(96)}

        assert len(blocks) == 96
        assert min(blocks) == geometry.reserved_area_start
        assert max(blocks) == geometry.number_of_blocks - 1


class TestImageSizeValidation:
    """Test image size validation."""

    def test_full_size_image(self):
        """Test that a full dump is accepted."""
        geometry = DeviceGeometry()

        valid, error = validate_image_size(geometry, geometry.total_bytes)

        assert valid is True
        assert error is None

    def test_short_image(self):
        """Test that a truncated dump is reported."""
        geometry = DeviceGeometry()

        valid, error = validate_image_size(geometry, 16896 * 10 + 5)

        assert valid is False
        assert "10 whole blocks" in error
        assert "5 trailing bytes" in error

    def test_geometry_summary(self):
        """Test the human-readable summary."""
        summary = get_geometry_summary(DeviceGeometry())

        assert "Blocks: 4096" in summary
        assert "Reserved Area: blocks 4000-4095" in summary
