"""Tests for the palette value type and nearest-color matching."""

import itertools

import pytest

from palette import (
    BLACK_WHITE_PALETTE,
    INKY_IMPRESSION_PALETTE,
    Palette,
    nearest,
    palette_from_config,
    parse_color,
    to_hex,
)


def squared_distance(a, b):
    return sum((int(x) - int(y)) ** 2 for x, y in zip(a, b))


class TestParseColor:
    """Test suite for parse_color."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("#FFA500", (255, 165, 0)),
            ("ffa500", (255, 165, 0)),
            ("#0f0", (0, 255, 0)),
            ((1, 2, 3), (1, 2, 3)),
            ([255, 255, 255], (255, 255, 255)),
        ],
    )
    def test_parse_color_when_valid_then_returns_tuple(self, value, expected) -> None:
        assert parse_color(value) == expected

    @pytest.mark.parametrize("value", ["#12345", "#GGGGGG", "", (1, 2), (1, 2, 256), (-1, 0, 0), (1.5, 2, 3), 7])
    def test_parse_color_when_invalid_then_raises(self, value) -> None:
        with pytest.raises(ValueError):
            parse_color(value)

    def test_to_hex_when_called_then_uppercase_with_hash(self) -> None:
        assert to_hex((255, 165, 0)) == "#FFA500"


class TestPalette:
    """Test suite for the Palette value type."""

    def test_init_when_empty_then_raises(self) -> None:
        with pytest.raises(ValueError, match="at least one color"):
            Palette([])

    def test_init_when_duplicate_colors_then_raises(self) -> None:
        with pytest.raises(ValueError, match="distinct"):
            Palette([(0, 0, 0), "#000000"])

    def test_init_when_names_mismatch_then_raises(self) -> None:
        with pytest.raises(ValueError, match="names"):
            Palette([(0, 0, 0), (255, 255, 255)], names=["black"])

    def test_init_when_no_names_then_uses_hex(self) -> None:
        palette = Palette([(0, 0, 0), (255, 0, 0)])

        assert palette.names == ("#000000", "#FF0000")

    def test_sequence_protocol_when_used_then_preserves_order(self) -> None:
        palette = Palette(["#FFFFFF", "#000000"], names=["white", "black"])

        assert len(palette) == 2
        assert list(palette) == [(255, 255, 255), (0, 0, 0)]
        assert palette[1] == (0, 0, 0)
        assert (255, 255, 255) in palette
        assert [255, 255, 255] in palette
        assert (1, 1, 1) not in palette

    def test_index_when_not_member_then_raises(self, bw_palette) -> None:
        assert bw_palette.index((255, 255, 255)) == 1
        assert bw_palette.name_of((0, 0, 0)) == "black"
        with pytest.raises(ValueError):
            bw_palette.index((1, 2, 3))

    def test_equality_when_same_colors_then_equal(self, bw_palette) -> None:
        assert bw_palette == BLACK_WHITE_PALETTE
        assert bw_palette != Palette([(255, 255, 255), (0, 0, 0)])

    def test_to_dict_when_called_then_describes_each_color(self) -> None:
        result = INKY_IMPRESSION_PALETTE.to_dict()

        assert result[0] == {"index": 0, "name": "black", "rgb": [0, 0, 0], "hex": "#000000"}
        assert result[-1]["name"] == "orange"
        assert result[-1]["rgb"] == [255, 165, 0]

    def test_inky_palette_when_loaded_then_matches_panel_index_order(self) -> None:
        assert INKY_IMPRESSION_PALETTE.names == ("black", "white", "green", "blue", "red", "yellow", "orange")

    def test_palette_from_config_when_not_mapping_then_raises(self) -> None:
        with pytest.raises(ValueError):
            palette_from_config(["#000000"])
        with pytest.raises(ValueError):
            palette_from_config(None)


class TestNearest:
    """Test suite for nearest-color matching."""

    def test_nearest_when_light_gray_then_white(self, bw_palette) -> None:
        assert nearest((200, 200, 200), bw_palette) == (255, 255, 255)

    def test_nearest_when_dark_gray_then_black(self, bw_palette) -> None:
        assert nearest((50, 50, 50), bw_palette) == (0, 0, 0)

    def test_nearest_when_mid_gray_128_then_white(self, bw_palette) -> None:
        # 3*127^2 to white is strictly less than 3*128^2 to black
        assert nearest((128, 128, 128), bw_palette) == (255, 255, 255)

    def test_nearest_when_tie_then_earliest_entry_wins(self) -> None:
        first = Palette([(0, 0, 0), (2, 0, 0)])
        second = Palette([(2, 0, 0), (0, 0, 0)])

        assert nearest((1, 0, 0), first) == (0, 0, 0)
        assert nearest((1, 0, 0), second) == (2, 0, 0)

    def test_nearest_when_called_then_returns_palette_entry_itself(self, bw_palette) -> None:
        result = nearest((250, 250, 250), bw_palette)

        assert result is bw_palette[1]

    def test_nearest_when_out_of_range_channels_then_treated_as_integers(self) -> None:
        assert nearest((300, -20, 0), INKY_IMPRESSION_PALETTE) == (255, 0, 0)
        assert nearest((-500, -500, -500), INKY_IMPRESSION_PALETTE) == (0, 0, 0)

    def test_nearest_when_not_a_palette_then_raises(self) -> None:
        with pytest.raises(ValueError):
            nearest((0, 0, 0), [(0, 0, 0)])

    def test_nearest_when_swept_then_minimal_and_earliest(self) -> None:
        palette = Palette([(0, 0, 0), (128, 128, 128), (255, 255, 255), (128, 0, 0), (0, 128, 0)])

        for color in itertools.product(range(0, 256, 32), repeat=3):
            result = nearest(color, palette)
            distances = [squared_distance(color, swatch) for swatch in palette]
            best = min(distances)

            assert squared_distance(color, result) == best
            assert palette.index(result) == distances.index(best)
