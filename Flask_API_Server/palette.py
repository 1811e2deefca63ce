from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

Color = Tuple[int, int, int]
ColorLike = Union[str, Sequence[int]]

# Native color set of the Inky Impression 7.3" panel, in the panel's own
# color index order (black=0 ... orange=6)
INKY_IMPRESSION_COLORS = {
    'black': '#000000',
    'white': '#FFFFFF',
    'green': '#00FF00',
    'blue': '#0000FF',
    'red': '#FF0000',
    'yellow': '#FFFF00',
    'orange': '#FFA500'
}


def parse_color(value: ColorLike) -> Color:
    """Parse '#RRGGBB', 'RRGGBB', '#RGB' or an (r, g, b) sequence."""
    if isinstance(value, str):
        hex_value = value.strip().lstrip('#')
        if len(hex_value) == 3:
            hex_value = ''.join(c * 2 for c in hex_value)
        if len(hex_value) != 6:
            raise ValueError(f"Invalid color string: {value!r}")
        try:
            return (int(hex_value[0:2], 16), int(hex_value[2:4], 16), int(hex_value[4:6], 16))
        except ValueError:
            raise ValueError(f"Invalid color string: {value!r}") from None

    try:
        channels = tuple(value)
    except TypeError:
        raise ValueError(f"Invalid color: {value!r}") from None
    if len(channels) != 3 or not all(isinstance(c, int) and not isinstance(c, bool) for c in channels):
        raise ValueError(f"Color must be three integers, got {value!r}")
    if not all(0 <= c <= 255 for c in channels):
        raise ValueError(f"Color channels must be in 0-255, got {value!r}")
    return channels


def to_hex(color: Color) -> str:
    return '#{:02X}{:02X}{:02X}'.format(*color)


class Palette:
    """Ordered, immutable set of display colors.

    Order matters: it is the tie-break order used by nearest() and, for
    device palettes, the color code written to the display buffer.
    """

    __slots__ = ('_swatches', '_names', '_lookup')

    def __init__(self, swatches: Sequence[ColorLike], names: Optional[Sequence[str]] = None):
        parsed = tuple(parse_color(s) for s in swatches)
        if not parsed:
            raise ValueError("Palette must contain at least one color")
        if len(set(parsed)) != len(parsed):
            raise ValueError("Palette colors must be distinct")
        if names is None:
            names = [to_hex(c) for c in parsed]
        names = tuple(names)
        if len(names) != len(parsed):
            raise ValueError("Palette names must match the number of colors")

        self._swatches: Tuple[Color, ...] = parsed
        self._names: Tuple[str, ...] = names
        self._lookup: Dict[Color, int] = {c: i for i, c in enumerate(parsed)}

    @property
    def colors(self) -> Tuple[Color, ...]:
        return self._swatches

    @property
    def names(self) -> Tuple[str, ...]:
        return self._names

    def __len__(self) -> int:
        return len(self._swatches)

    def __iter__(self) -> Iterator[Color]:
        return iter(self._swatches)

    def __getitem__(self, index: int) -> Color:
        return self._swatches[index]

    def __contains__(self, color) -> bool:
        try:
            return tuple(color) in self._lookup
        except TypeError:
            return False

    def __eq__(self, other) -> bool:
        if not isinstance(other, Palette):
            return NotImplemented
        return self._swatches == other._swatches

    def __hash__(self) -> int:
        return hash(self._swatches)

    def __repr__(self) -> str:
        return f"Palette({', '.join(self._names)})"

    def index(self, color: Sequence[int]) -> int:
        """Position of an exact palette member, ValueError otherwise."""
        try:
            return self._lookup[tuple(color)]
        except KeyError:
            raise ValueError(f"{tuple(color)} is not a palette color") from None

    def name_of(self, color: Sequence[int]) -> str:
        return self._names[self.index(color)]

    def to_dict(self) -> List[dict]:
        return [
            {'index': i, 'name': name, 'rgb': list(color), 'hex': to_hex(color)}
            for i, (name, color) in enumerate(zip(self._names, self._swatches))
        ]


def nearest(color: Sequence[int], palette: Palette) -> Color:
    """Find the closest color in the palette.

    Squared Euclidean RGB distance; the first entry with the smallest
    distance wins, later entries at an equal distance never replace it.
    Channels are plain ints, so out-of-range samples are fine.
    """
    if not isinstance(palette, Palette):
        raise ValueError(f"Expected a Palette, got {type(palette).__name__}")

    r, g, b = int(color[0]), int(color[1]), int(color[2])
    min_dist = float('inf')
    closest_color = palette.colors[0]
    for swatch in palette.colors:
        dist = (r - swatch[0]) ** 2 + (g - swatch[1]) ** 2 + (b - swatch[2]) ** 2
        if dist < min_dist:
            min_dist = dist
            closest_color = swatch
    return closest_color


def palette_from_config(mapping: Mapping[str, ColorLike]) -> Palette:
    """Build a palette from an ordered {name: color} mapping."""
    if not isinstance(mapping, Mapping):
        raise ValueError("Palette configuration must be a mapping of name to color")
    return Palette(list(mapping.values()), names=list(mapping.keys()))


INKY_IMPRESSION_PALETTE = palette_from_config(INKY_IMPRESSION_COLORS)
BLACK_WHITE_PALETTE = Palette([(0, 0, 0), (255, 255, 255)], names=['black', 'white'])

BUILTIN_PALETTES = {
    'inky': INKY_IMPRESSION_PALETTE,
    'bw': BLACK_WHITE_PALETTE
}
