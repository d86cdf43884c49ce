"""Tests for pixel normalization from packed formats to canonical RGB."""

from __future__ import annotations

import struct

import numpy as np
import pytest
from pydantic import ValidationError

from doomstream.capture.base import BGR24, BGRA32, RGB565, CaptureError, PixelFormat, RawFrame
from doomstream.capture.pixels import channel_to_8bit, mask_shift_width, normalize, unpack_pixels


class TestMaskShiftWidth:
    @pytest.mark.parametrize(
        "mask, expected",
        [
            (0x000000FF, (0, 8)),
            (0x0000FF00, (8, 8)),
            (0x00FF0000, (16, 8)),
            (0xF800, (11, 5)),
            (0x07E0, (5, 6)),
            (0x001F, (0, 5)),
            (0x3FF00000, (20, 10)),
        ],
    )
    def test_known_masks(self, mask: int, expected: tuple[int, int]) -> None:
        assert mask_shift_width(mask) == expected

    def test_zero_mask_rejected(self) -> None:
        with pytest.raises(ValueError):
            mask_shift_width(0)


class TestChannelTo8Bit:
    def test_full_byte_mask_is_exact(self) -> None:
        values = np.arange(256, dtype=np.uint32) << 8
        out = channel_to_8bit(values, 0x0000FF00)
        assert np.array_equal(out, np.arange(256, dtype=np.uint8))

    def test_narrow_mask_maximum_maps_to_255(self) -> None:
        assert int(channel_to_8bit(0xF800, 0xF800)) == 255
        assert int(channel_to_8bit(0x07E0, 0x07E0)) == 255
        assert int(channel_to_8bit(0x001F, 0x001F)) == 255

    def test_narrow_mask_zero_maps_to_zero(self) -> None:
        assert int(channel_to_8bit(0x0000, 0xF800)) == 0

    def test_narrow_mask_is_linear(self) -> None:
        # 5-bit mid-scale 16/31 of full range
        assert int(channel_to_8bit(16, 0x1F)) == 16 * 255 // 31

    def test_wide_mask_keeps_top_bits(self) -> None:
        mask = 0x3FF  # 10 bits
        assert int(channel_to_8bit(0x3FF, mask)) == 255
        assert int(channel_to_8bit(0x200, mask)) == 128
        assert int(channel_to_8bit(0x003, mask)) == 0

    def test_ignores_bits_outside_mask(self) -> None:
        assert int(channel_to_8bit(0xFFFF00AB, 0x000000FF)) == 0xAB


class TestUnpackPixels:
    def test_24bit_little_endian(self) -> None:
        frame = RawFrame(width=1, height=1, pixel_format=BGR24, data=bytes([0x11, 0x22, 0x33]))
        assert unpack_pixels(frame).tolist() == [0x332211]

    def test_short_data_rejected(self) -> None:
        frame = RawFrame(width=2, height=2, pixel_format=BGRA32, data=b"\x00" * 15)
        with pytest.raises(CaptureError, match="expected 16"):
            unpack_pixels(frame)


class TestNormalize:
    def test_bgra32_pixel(self) -> None:
        data = struct.pack("<I", 0x00102030)
        frame = RawFrame(width=1, height=1, pixel_format=BGRA32, data=data)
        out = np.zeros((1, 1, 3), dtype=np.uint8)
        normalize(frame, out)
        assert out[0, 0].tolist() == [0x10, 0x20, 0x30]

    def test_rgb565_primaries(self) -> None:
        data = struct.pack("<3H", 0xF800, 0x07E0, 0x001F)
        frame = RawFrame(width=3, height=1, pixel_format=RGB565, data=data)
        out = np.zeros((1, 3, 3), dtype=np.uint8)
        normalize(frame, out)
        assert out[0].tolist() == [[255, 0, 0], [0, 255, 0], [0, 0, 255]]

    def test_row_major_layout(self) -> None:
        pixels = [0x00FF0000, 0x0000FF00, 0x000000FF, 0x00FFFFFF]
        frame = RawFrame(
            width=2, height=2, pixel_format=BGRA32, data=struct.pack("<4I", *pixels),
        )
        out = np.zeros((2, 2, 3), dtype=np.uint8)
        normalize(frame, out)
        assert out[0, 1].tolist() == [0, 255, 0]
        assert out[1, 0].tolist() == [0, 0, 255]
        assert out[1, 1].tolist() == [255, 255, 255]

    def test_dimension_mismatch_rejected(self, canonical_buffer: np.ndarray) -> None:
        frame = RawFrame(width=1, height=1, pixel_format=BGRA32, data=b"\x00" * 4)
        with pytest.raises(CaptureError, match="Dimension mismatch"):
            normalize(frame, canonical_buffer)


class TestPixelFormat:
    def test_presets_are_valid(self) -> None:
        assert BGRA32.bytes_per_pixel == 4
        assert BGR24.bytes_per_pixel == 3
        assert RGB565.bytes_per_pixel == 2

    def test_mask_wider_than_pixel_rejected(self) -> None:
        with pytest.raises(ValidationError, match="exceeds"):
            PixelFormat(bits_per_pixel=16, red_mask=0xFF0000, green_mask=0xFF00, blue_mask=0xFF)

    def test_non_contiguous_mask_rejected(self) -> None:
        with pytest.raises(ValidationError, match="not contiguous"):
            PixelFormat(bits_per_pixel=32, red_mask=0xF0F000, green_mask=0xFF00, blue_mask=0xFF)
