"""
Geohash Codec
=============

Encode/decode latitude/longitude pairs to/from base-32 geohash cells.

Encoding bisects the longitude and latitude ranges alternately (longitude
first); each bisection contributes one bit, and every 5 bits select one
character of the alphabet. A cell of length n therefore covers a box of
5n/2 longitude bits and 5n/2 latitude bits (rounded in longitude's favor
for odd n).

Properties:
    - Deterministic: encode(37.7749, -122.4194, 6) == "9q8yyk"
    - Points sharing an n-character prefix lie in the same box of that
      precision. The converse does not hold near box edges, which is why
      queries expand to neighbor cells.
"""

from typing import List

from geocrowd.errors import InvalidCellChar
from geocrowd.models.geo import DecodedCell, GeoPoint


# Base32 alphabet: digits and lowercase letters without a, i, l, o
BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"

MIN_PRECISION = 1
MAX_PRECISION = 12

# Character -> alphabet position, -1 for characters outside the alphabet
_DECODE_MAP: List[int] = [-1] * 128
for _i, _c in enumerate(BASE32):
    _DECODE_MAP[ord(_c)] = _i


def char_index(cell: str, char: str) -> int:
    """
    Alphabet position of one cell character.

    Raises:
        InvalidCellChar: If the character is outside the alphabet
    """
    code = ord(char)
    idx = _DECODE_MAP[code] if code < 128 else -1
    if idx < 0:
        raise InvalidCellChar(cell, char)
    return idx


def validate_cell(cell: str) -> str:
    """
    Check that every character of a cell is in the alphabet.

    Returns:
        The cell unchanged

    Raises:
        ValueError: If the cell is empty or longer than MAX_PRECISION
        InvalidCellChar: If a character is outside the alphabet
    """
    if not cell:
        raise ValueError("cell must not be empty")
    if len(cell) > MAX_PRECISION:
        raise ValueError(f"cell length must be <= {MAX_PRECISION}, got {len(cell)}")
    for char in cell:
        char_index(cell, char)
    return cell


def encode(latitude: float, longitude: float, precision: int = 6) -> str:
    """
    Encode a point as a geohash cell.

    Args:
        latitude: Latitude in degrees [-90, 90]
        longitude: Longitude in degrees [-180, 180]
        precision: Number of characters, 1 to 12

    Returns:
        Geohash string of length `precision`
    """
    if not MIN_PRECISION <= precision <= MAX_PRECISION:
        raise ValueError(
            f"precision must be in [{MIN_PRECISION}, {MAX_PRECISION}], got {precision}"
        )

    lat_min, lat_max = -90.0, 90.0
    lng_min, lng_max = -180.0, 180.0

    chars: List[str] = []
    idx = 0
    bit = 0
    even_bit = True

    while len(chars) < precision:
        if even_bit:
            mid = (lng_min + lng_max) / 2
            if longitude > mid:
                idx = (idx << 1) + 1
                lng_min = mid
            else:
                idx = idx << 1
                lng_max = mid
        else:
            mid = (lat_min + lat_max) / 2
            if latitude > mid:
                idx = (idx << 1) + 1
                lat_min = mid
            else:
                idx = idx << 1
                lat_max = mid
        even_bit = not even_bit

        bit += 1
        if bit == 5:
            chars.append(BASE32[idx])
            bit = 0
            idx = 0

    return "".join(chars)


def encode_point(point: GeoPoint, precision: int) -> str:
    """Encode a GeoPoint. See encode()."""
    return encode(point.latitude, point.longitude, precision)


def decode(cell: str) -> DecodedCell:
    """
    Decode a geohash cell to its centroid and error bounds.

    Args:
        cell: Geohash string

    Returns:
        DecodedCell with centroid and half-height/half-width

    Raises:
        InvalidCellChar: If any character is outside the alphabet
    """
    validate_cell(cell)

    lat_min, lat_max = -90.0, 90.0
    lng_min, lng_max = -180.0, 180.0
    even_bit = True

    for char in cell:
        idx = char_index(cell, char)
        for n in range(4, -1, -1):
            bit_n = (idx >> n) & 1
            if even_bit:
                mid = (lng_min + lng_max) / 2
                if bit_n:
                    lng_min = mid
                else:
                    lng_max = mid
            else:
                mid = (lat_min + lat_max) / 2
                if bit_n:
                    lat_min = mid
                else:
                    lat_max = mid
            even_bit = not even_bit

    latitude = (lat_min + lat_max) / 2
    longitude = (lng_min + lng_max) / 2

    return DecodedCell(
        latitude=latitude,
        longitude=longitude,
        lat_error=lat_max - latitude,
        lng_error=lng_max - longitude,
    )
