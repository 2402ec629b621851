"""Encode and decode Plus Codes (Open Location Codes).

A code is a run of base-20 digits with a "+" separator after the eighth.
The first ten digits alternate latitude and longitude ("pair" digits), each
pair dividing the previous cell by 20 on both axes. Up to five more digits
refine the cell on a 5-row by 4-column grid.
"""

import logging
import math
from dataclasses import dataclass

logger = logging.getLogger(__name__)

CODE_ALPHABET = "23456789CFGHJMPQRVWX"
ENCODING_BASE = len(CODE_ALPHABET)  # 20
CHAR_TO_INDEX = {c: i for i, c in enumerate(CODE_ALPHABET)}

SEPARATOR = "+"
SEPARATOR_POSITION = 8
PADDING_CHARACTER = "0"

LATITUDE_MAX = 90
LONGITUDE_MAX = 180

CODE_PRECISION_NORMAL = 10
CODE_PRECISION_EXTRA = 11

MAX_DIGIT_COUNT = 15
PAIR_CODE_LENGTH = 10
GRID_CODE_LENGTH = MAX_DIGIT_COUNT - PAIR_CODE_LENGTH
GRID_COLUMNS = 4
GRID_ROWS = 5

# Place value of each pair position, in degrees.
PAIR_RESOLUTIONS = (20.0, 1.0, 0.05, 0.0025, 0.000125)

PAIR_FIRST_PLACE_VALUE = ENCODING_BASE ** (PAIR_CODE_LENGTH // 2 - 1)
PAIR_PRECISION = ENCODING_BASE**3
GRID_LAT_FIRST_PLACE_VALUE = GRID_ROWS ** (GRID_CODE_LENGTH - 1)
GRID_LNG_FIRST_PLACE_VALUE = GRID_COLUMNS ** (GRID_CODE_LENGTH - 1)

# Multipliers that turn degrees into integer multiples of the finest cell.
FINAL_LAT_PRECISION = PAIR_PRECISION * GRID_ROWS**GRID_CODE_LENGTH
FINAL_LNG_PRECISION = PAIR_PRECISION * GRID_COLUMNS**GRID_CODE_LENGTH

MIN_TRIMMABLE_CODE_LEN = 6


class PlusCodeError(ValueError):
    """Base class for invalid input to the Plus Code functions."""


class InvalidCodeLengthError(PlusCodeError):
    pass


class InvalidFullCodeError(PlusCodeError):
    pass


class InvalidShortCodeError(PlusCodeError):
    pass


class PaddedCodeNotShortenableError(PlusCodeError):
    pass


class CodeTooShortToShortenError(PlusCodeError):
    pass


@dataclass(frozen=True)
class CodeArea:
    """Bounding box of a decoded code.

    The lower bounds are inclusive and the upper bounds exclusive.
    """

    latitude_lo: float
    longitude_lo: float
    latitude_hi: float
    longitude_hi: float
    code_length: int

    @property
    def latitude_center(self) -> float:
        return min(
            self.latitude_lo + (self.latitude_hi - self.latitude_lo) / 2,
            LATITUDE_MAX,
        )

    @property
    def longitude_center(self) -> float:
        return min(
            self.longitude_lo + (self.longitude_hi - self.longitude_lo) / 2,
            LONGITUDE_MAX,
        )

    def get_latitude_height(self) -> float:
        return self.latitude_hi - self.latitude_lo

    def get_longitude_width(self) -> float:
        return self.longitude_hi - self.longitude_lo

    def contains(self, latitude: float, longitude: float) -> bool:
        """Check whether a point falls inside this area."""
        return (
            self.latitude_lo <= latitude < self.latitude_hi
            and self.longitude_lo <= longitude < self.longitude_hi
        )


def is_valid(code: str) -> bool:
    """Check that a string is a syntactically valid full or short code.

    The separator is required and must sit at an even offset no later than
    the eighth digit. Padding is only allowed in full codes, as one run of an
    even number of zeros that ends the code right before the separator.
    """
    if not code or len(code) == 1:
        return False

    sep = code.find(SEPARATOR)
    if sep == -1 or sep != code.rfind(SEPARATOR):
        return False
    if sep > SEPARATOR_POSITION or sep % 2 == 1:
        return False

    pad = code.find(PADDING_CHARACTER)
    if pad > -1:
        # Short codes cannot have padding
        if sep < SEPARATOR_POSITION:
            return False
        if pad == 0:
            return False
        run = code[pad:].split(SEPARATOR)[0]
        if run.strip(PADDING_CHARACTER) or len(run) % 2 == 1:
            return False
        if len(run) > SEPARATOR_POSITION - 2:
            return False
        if not code.endswith(SEPARATOR):
            return False

    # A single character after the separator is not legal.
    if len(code) - sep - 1 == 1:
        return False

    stripped = code.replace(SEPARATOR, "").replace(PADDING_CHARACTER, "")
    return all(c.upper() in CHAR_TO_INDEX for c in stripped)


def is_short(code: str) -> bool:
    """Check for a valid code with fewer than eight digits before the "+"."""
    if not is_valid(code):
        return False
    return 0 <= code.find(SEPARATOR) < SEPARATOR_POSITION


def is_full(code: str) -> bool:
    """Check for a valid code that decodes without a reference location."""
    if not is_valid(code) or is_short(code):
        return False

    first_lat_value = CHAR_TO_INDEX[code[0].upper()] * ENCODING_BASE
    if first_lat_value >= LATITUDE_MAX * 2:
        return False
    if len(code) > 1:
        first_lng_value = CHAR_TO_INDEX[code[1].upper()] * ENCODING_BASE
        if first_lng_value >= LONGITUDE_MAX * 2:
            return False
    return True


def is_padded(code: str) -> bool:
    return PADDING_CHARACTER in code


def clip_latitude(latitude: float) -> float:
    return min(LATITUDE_MAX, max(-LATITUDE_MAX, latitude))


def normalize_longitude(longitude: float) -> float:
    """Wrap a longitude into [-180, 180)."""
    while longitude < -LONGITUDE_MAX:
        longitude += 360
    while longitude >= LONGITUDE_MAX:
        longitude -= 360
    return longitude


def compute_latitude_precision(code_length: int) -> float:
    """Height in degrees of the cell for a code of the given length.

    Up to ten digits height and width are equal; grid digits split rows five
    ways but columns only four, so beyond that they diverge.
    """
    if code_length <= PAIR_CODE_LENGTH:
        return float(ENCODING_BASE) ** math.floor(code_length / -2 + 2)
    return ENCODING_BASE**-3 / GRID_ROWS ** (code_length - PAIR_CODE_LENGTH)


def compute_longitude_precision(code_length: int) -> float:
    if code_length <= PAIR_CODE_LENGTH:
        return compute_latitude_precision(code_length)
    return ENCODING_BASE**-3 / GRID_COLUMNS ** (code_length - PAIR_CODE_LENGTH)


def _check_code_length(code_length: int) -> int:
    # Pair digits come in latitude/longitude twos.
    if code_length < 2 or (code_length < PAIR_CODE_LENGTH and code_length % 2 == 1):
        raise InvalidCodeLengthError(f"Invalid Plus Code length: {code_length}")
    return min(code_length, MAX_DIGIT_COUNT)


def encode(
    latitude: float, longitude: float, code_length: int = CODE_PRECISION_NORMAL
) -> str:
    """Encode a location into a Plus Code.

    Args:
        latitude: degrees, clipped to [-90, 90]
        longitude: degrees, normalized to [-180, 180)
        code_length: number of significant digits; lengths above 15 are
            treated as 15

    Returns:
        the upper-case code, padded with zeros when shorter than 8 digits
    """
    code_length = _check_code_length(code_length)

    latitude = clip_latitude(latitude)
    longitude = normalize_longitude(longitude)
    # A latitude of 90 would land on the top edge; move it into the last cell.
    if latitude == LATITUDE_MAX:
        latitude -= compute_latitude_precision(code_length)

    # Round before truncating, or representation error in the product leaks
    # into the last digit.
    lat_val = int(round((latitude + LATITUDE_MAX) * FINAL_LAT_PRECISION, 6))
    lng_val = int(round((longitude + LONGITUDE_MAX) * FINAL_LNG_PRECISION, 6))

    digits = []
    if code_length > PAIR_CODE_LENGTH:
        for _ in range(GRID_CODE_LENGTH):
            lat_digit = lat_val % GRID_ROWS
            lng_digit = lng_val % GRID_COLUMNS
            digits.append(CODE_ALPHABET[lat_digit * GRID_COLUMNS + lng_digit])
            lat_val //= GRID_ROWS
            lng_val //= GRID_COLUMNS
    else:
        lat_val //= GRID_ROWS**GRID_CODE_LENGTH
        lng_val //= GRID_COLUMNS**GRID_CODE_LENGTH

    for _ in range(PAIR_CODE_LENGTH // 2):
        digits.append(CODE_ALPHABET[lng_val % ENCODING_BASE])
        digits.append(CODE_ALPHABET[lat_val % ENCODING_BASE])
        lat_val //= ENCODING_BASE
        lng_val //= ENCODING_BASE

    code = "".join(reversed(digits))
    code = code[:SEPARATOR_POSITION] + SEPARATOR + code[SEPARATOR_POSITION:]

    if code_length >= SEPARATOR_POSITION:
        return code[: code_length + 1]
    padding = PADDING_CHARACTER * (SEPARATOR_POSITION - code_length)
    return code[:code_length] + padding + SEPARATOR


def decode(code: str) -> CodeArea:
    """Decode a full code into the area it covers.

    Pair and grid parts are accumulated separately as integers and only
    converted to degrees at the end.
    """
    if not is_full(code):
        raise InvalidFullCodeError(f"Not a valid full Plus Code: {code!r}")

    digits = code.replace(SEPARATOR, "").replace(PADDING_CHARACTER, "").upper()

    normal_lat = -LATITUDE_MAX * PAIR_PRECISION
    normal_lng = -LONGITUDE_MAX * PAIR_PRECISION
    grid_lat = 0
    grid_lng = 0

    pair_digits = min(len(digits), PAIR_CODE_LENGTH)
    pv = PAIR_FIRST_PLACE_VALUE
    for position in range(0, pair_digits, 2):
        normal_lat += CHAR_TO_INDEX[digits[position]] * pv
        normal_lng += CHAR_TO_INDEX[digits[position + 1]] * pv
        if position < pair_digits - 2:
            pv //= ENCODING_BASE

    lat_precision = pv / PAIR_PRECISION
    lng_precision = pv / PAIR_PRECISION

    if len(digits) > PAIR_CODE_LENGTH:
        rowpv = GRID_LAT_FIRST_PLACE_VALUE
        colpv = GRID_LNG_FIRST_PLACE_VALUE
        grid_digits = min(len(digits), MAX_DIGIT_COUNT)
        for position in range(PAIR_CODE_LENGTH, grid_digits):
            row, col = divmod(CHAR_TO_INDEX[digits[position]], GRID_COLUMNS)
            grid_lat += row * rowpv
            grid_lng += col * colpv
            if position < grid_digits - 1:
                rowpv //= GRID_ROWS
                colpv //= GRID_COLUMNS
        lat_precision = rowpv / FINAL_LAT_PRECISION
        lng_precision = colpv / FINAL_LNG_PRECISION

    lat = normal_lat / PAIR_PRECISION + grid_lat / FINAL_LAT_PRECISION
    lng = normal_lng / PAIR_PRECISION + grid_lng / FINAL_LNG_PRECISION
    return CodeArea(
        round(lat, 14),
        round(lng, 14),
        round(lat + lat_precision, 14),
        round(lng + lng_precision, 14),
        min(len(digits), MAX_DIGIT_COUNT),
    )


def shorten(code: str, latitude: float, longitude: float) -> str:
    """Drop as many leading digits as the reference location allows.

    The reference must lie within 0.3 of a cell (rather than the 0.5 that
    would be strictly enough) of the code's center for that cell's digits to
    be removed, so the short code recovers to the same full code.
    """
    if not is_full(code):
        raise InvalidFullCodeError(f"Not a valid full Plus Code: {code!r}")
    if is_padded(code):
        raise PaddedCodeNotShortenableError(f"Cannot shorten padded code: {code!r}")

    code = code.upper()
    area = decode(code)
    if area.code_length < MIN_TRIMMABLE_CODE_LEN:
        raise CodeTooShortToShortenError(
            f"Code length must be at least {MIN_TRIMMABLE_CODE_LEN}, "
            f"got {area.code_length}"
        )

    latitude = clip_latitude(latitude)
    longitude = normalize_longitude(longitude)

    distance = max(
        abs(area.latitude_center - latitude),
        abs(area.longitude_center - longitude),
    )
    for i in range(len(PAIR_RESOLUTIONS) - 2, 0, -1):
        if distance < PAIR_RESOLUTIONS[i] * 0.3:
            logger.debug("Trimming %d digits from %s", (i + 1) * 2, code)
            return code[(i + 1) * 2 :]
    return code


def recover_nearest(short_code: str, latitude: float, longitude: float) -> str:
    """Recover the full code nearest to a reference location.

    Full codes are returned as given.
    """
    if not is_short(short_code):
        if is_full(short_code):
            return short_code
        raise InvalidShortCodeError(f"Not a valid short Plus Code: {short_code!r}")

    latitude = clip_latitude(latitude)
    longitude = normalize_longitude(longitude)
    short_code = short_code.upper()

    padding_length = SEPARATOR_POSITION - short_code.find(SEPARATOR)
    resolution = ENCODING_BASE ** (2 - padding_length / 2)
    half_resolution = resolution / 2.0

    prefix = encode(latitude, longitude)[:padding_length]
    area = decode(prefix + short_code)
    center_lat = area.latitude_center
    center_lng = area.longitude_center

    # The padded code may be a cell away from the reference. Move it back
    # toward the reference, but not past a pole.
    if (
        latitude + half_resolution < center_lat
        and center_lat - resolution >= -LATITUDE_MAX
    ):
        center_lat -= resolution
    elif (
        latitude - half_resolution > center_lat
        and center_lat + resolution <= LATITUDE_MAX
    ):
        center_lat += resolution

    if longitude + half_resolution < center_lng:
        center_lng -= resolution
    elif longitude - half_resolution > center_lng:
        center_lng += resolution

    if (center_lat, center_lng) != (area.latitude_center, area.longitude_center):
        logger.debug(
            "Shifted %s from (%f, %f) to (%f, %f)",
            prefix + short_code,
            area.latitude_center,
            area.longitude_center,
            center_lat,
            center_lng,
        )
    return encode(center_lat, center_lng, area.code_length)


class PlusCode:
    """Plus Code encoder/decoder with a configured default code length."""

    def __init__(self, code_length: int = CODE_PRECISION_NORMAL):
        """Initialize the codec; lengths above 15 are stored as 15."""
        self.code_length = _check_code_length(code_length)

    def encode(self, lat: float, lon: float) -> str:
        """Encode a latitude and longitude at the configured length."""
        return encode(lat, lon, self.code_length)

    def decode(self, code: str) -> CodeArea:
        return decode(code)

    def _get_cell_size(self, code_length: int) -> tuple[float, float]:
        """Calculate the size of a cell for a given code length.

        Args:
            code_length (int): number of significant digits

        Returns:
            (latitude_height, longitude_width)
        """
        return (
            compute_latitude_precision(code_length),
            compute_longitude_precision(code_length),
        )

    def get_neighbors(self, code: str) -> dict[str, str]:
        """
        Compute the 8 neighboring codes (N, S, E, W, NE, NW, SE, SW) at the
        length of the given full code.
        """
        area = decode(code)
        lat_height, lon_width = self._get_cell_size(area.code_length)
        directions = {
            "n": (lat_height, 0),
            "s": (-lat_height, 0),
            "e": (0, lon_width),
            "w": (0, -lon_width),
            "ne": (lat_height, lon_width),
            "se": (-lat_height, lon_width),
            "nw": (lat_height, -lon_width),
            "sw": (-lat_height, -lon_width),
        }
        neighbors = {}
        for direction, (dlat, dlon) in directions.items():
            # encode() clips at the poles and wraps longitude
            nlat = area.latitude_center + dlat
            nlon = area.longitude_center + dlon
            neighbors[direction] = encode(nlat, nlon, area.code_length)
        return neighbors


if __name__ == "__main__":
    plus = PlusCode(code_length=CODE_PRECISION_EXTRA)
    encoded = plus.encode(41.878738, -87.6359612)  # Willis Tower
    decoded = plus.decode(encoded)
    short = shorten(encoded, 41.88, -87.63)
    neighbors = plus.get_neighbors(encoded)

    print(f"Encoded: {encoded}")
    print(f"Decoded: {decoded}")
    print(f"Shortened: {short}")
    print(f"Recovered: {recover_nearest(short, 41.88, -87.63)}")
    print(f"Neighbors: {neighbors}")
