"""
Prayer times calculation using low-precision astronomical formulas (USNO solar position).
Fajr/Isha from per-method twilight angles, Sunrise/Maghrib at 0.833° below the horizon,
Asr from the madhab shadow factor, plus the great-circle bearing to the Kaaba.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping

logger = logging.getLogger(__name__)


class CalculationMethod(str, Enum):
    MWL = "MWL"  # Muslim World League
    ISNA = "ISNA"  # Islamic Society of North America
    EGYPT = "Egypt"  # Egyptian General Authority of Survey
    MAKKAH = "Makkah"  # Umm Al-Qura University, Makkah
    KARACHI = "Karachi"  # University of Islamic Sciences, Karachi
    TEHRAN = "Tehran"  # Institute of Geophysics, University of Tehran
    JAFARI = "Jafari"  # Shia Ithna-Ashari, Leva Institute, Qum
    GULF = "Gulf"
    KUWAIT = "Kuwait"
    QATAR = "Qatar"
    SINGAPORE = "Singapore"  # Majlis Ugama Islam Singapura
    FRANCE = "France"  # Union des Organisations Islamiques de France
    TURKEY = "Turkey"  # Diyanet
    RUSSIA = "Russia"
    MOONSIGHTING = "Moonsighting"  # Moonsighting Committee Worldwide
    DUBAI = "Dubai"
    JAKIM = "JAKIM"  # Jabatan Kemajuan Islam Malaysia
    TUNISIA = "Tunisia"
    ALGERIA = "Algeria"
    KEMENAG = "KEMENAG"  # Kementerian Agama Republik Indonesia
    MOROCCO = "Morocco"
    PORTUGAL = "Portugal"  # Comunidade Islamica de Lisboa


class Madhab(str, Enum):
    SHAFI = "Shafi"
    HANAFI = "Hanafi"
    MALIKI = "Maliki"
    HANBALI = "Hanbali"


class PrayerName(str, Enum):
    FAJR = "Fajr"
    SUNRISE = "Sunrise"
    DHUHR = "Dhuhr"
    ASR = "Asr"
    MAGHRIB = "Maghrib"
    ISHA = "Isha"


PRAYER_ORDER: tuple[PrayerName, ...] = tuple(PrayerName)


@dataclass(frozen=True)
class MethodParameters:
    fajr_angle: float
    isha_angle: float
    isha_interval_minutes: int | None = None


METHOD_PARAMETERS: Mapping[CalculationMethod, MethodParameters] = {
    CalculationMethod.MWL: MethodParameters(18, 17),
    CalculationMethod.ISNA: MethodParameters(15, 15),
    CalculationMethod.EGYPT: MethodParameters(19.5, 17.5),
    CalculationMethod.MAKKAH: MethodParameters(18.5, 0, 90),
    CalculationMethod.KARACHI: MethodParameters(18, 18),
    CalculationMethod.TEHRAN: MethodParameters(17.7, 14),
    CalculationMethod.JAFARI: MethodParameters(16, 14),
    CalculationMethod.GULF: MethodParameters(19.5, 0, 90),
    CalculationMethod.KUWAIT: MethodParameters(18, 17.5),
    CalculationMethod.QATAR: MethodParameters(18, 0, 90),
    CalculationMethod.SINGAPORE: MethodParameters(20, 18),
    CalculationMethod.FRANCE: MethodParameters(12, 12),
    CalculationMethod.TURKEY: MethodParameters(18, 17),
    CalculationMethod.RUSSIA: MethodParameters(16, 15),
    CalculationMethod.MOONSIGHTING: MethodParameters(18, 18),
    CalculationMethod.DUBAI: MethodParameters(18.2, 18.2),
    CalculationMethod.JAKIM: MethodParameters(20, 18),
    CalculationMethod.TUNISIA: MethodParameters(18, 18),
    CalculationMethod.ALGERIA: MethodParameters(18, 17),
    CalculationMethod.KEMENAG: MethodParameters(20, 18),
    CalculationMethod.MOROCCO: MethodParameters(19, 17),
    CalculationMethod.PORTUGAL: MethodParameters(18, 17),
}

# Shafi/Maliki/Hanbali: shadow = 1 × object + noon shadow; Hanafi: 2 × object + noon shadow
ASR_SHADOW_FACTOR: Mapping[Madhab, int] = {
    Madhab.SHAFI: 1,
    Madhab.HANAFI: 2,
    Madhab.MALIKI: 1,
    Madhab.HANBALI: 1,
}

KAABA_LATITUDE = 21.4225
KAABA_LONGITUDE = 39.8262

# 0.833° below the horizon: refraction plus solar radius
SUNRISE_SUNSET_ZENITH = 90.833
ASR_FALLBACK_HOUR = 15.0
J2000 = 2451545.0
SECONDS_PER_DAY = 86400


class MissingCoordinateError(ValueError):
    """Raised when a location record lacks latitude or longitude."""


@dataclass(frozen=True)
class GeoCoordinate:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude must be within [-90, 90], got {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude must be within [-180, 180], got {self.longitude}")


@dataclass(frozen=True)
class CalculationRequest:
    coordinate: GeoCoordinate
    calendar_date: date
    method: CalculationMethod | str = CalculationMethod.MWL
    madhab: Madhab | str = Madhab.SHAFI
    use_12_hour_clock: bool = False
    utc_offset_minutes: int | None = None


@dataclass(frozen=True)
class PrayerTimeResult:
    name: PrayerName
    timestamp: int  # epoch milliseconds
    hour: int
    minute: int
    second: int
    formatted: str
    estimated: bool = False

    @property
    def time(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name.value,
            "timestamp": self.timestamp,
            "hour": self.hour,
            "minute": self.minute,
            "second": self.second,
            "formatted": self.formatted,
            "estimated": self.estimated,
        }


@dataclass(frozen=True)
class DailyResult:
    date: date
    coordinate: GeoCoordinate
    prayers: tuple[PrayerTimeResult, ...]
    qibla_bearing: float
    utc_offset_minutes: int = 0

    def get(self, name: PrayerName | str) -> PrayerTimeResult:
        name = PrayerName(name)
        for prayer in self.prayers:
            if prayer.name is name:
                return prayer
        raise KeyError(name)

    @property
    def estimated(self) -> list[PrayerName]:
        """Prayers whose time is a fallback substitution rather than a solved angle."""
        return [p.name for p in self.prayers if p.estimated]

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "latitude": self.coordinate.latitude,
            "longitude": self.coordinate.longitude,
            "utcOffsetMinutes": self.utc_offset_minutes,
            "prayers": [p.to_dict() for p in self.prayers],
            "qibla": self.qibla_bearing,
        }


def _deg2rad(d: float) -> float:
    return d * math.pi / 180.0


def _rad2deg(r: float) -> float:
    return r * 180.0 / math.pi


def _normalize_angle_360(degrees: float) -> float:
    """Normalize angle to [0, 360)."""
    d = degrees % 360.0
    return d if d < 360.0 else 0.0


def _normalize_hour_24(hours: float) -> float:
    """Normalize hour to [0, 24)."""
    h = hours % 24.0
    return h if h < 24.0 else 0.0


def method_parameters(method: CalculationMethod | str) -> MethodParameters:
    """Parameters for ``method``; anything unrecognised gets the MWL angles."""
    try:
        return METHOD_PARAMETERS[CalculationMethod(method)]
    except ValueError:
        logger.warning("Unknown calculation method %r, falling back to MWL", method)
        return METHOD_PARAMETERS[CalculationMethod.MWL]


def parse_madhab(madhab: Madhab | str) -> Madhab:
    """Case-insensitive madhab lookup; raises ValueError for unknown names."""
    if isinstance(madhab, Madhab):
        return madhab
    for candidate in Madhab:
        if candidate.value.lower() == str(madhab).strip().lower():
            return candidate
    raise ValueError(f"Unknown madhab: {madhab}")


def asr_shadow_factor(madhab: Madhab | str) -> int:
    return ASR_SHADOW_FACTOR[parse_madhab(madhab)]


def local_mean_time_offset(longitude: float) -> int:
    """Minutes east of UTC for local mean solar time at ``longitude``."""
    return round(longitude * 4)


def julian_day(year: int, month: int, day: int) -> float:
    """Julian Day Number (Gregorian calendar) for the given date; noon is implied."""
    a = (14 - month) // 12
    y = year + 4800 - a
    m = month + 12 * a - 3
    return float(day + (153 * m + 2) // 5 + 365 * y + y // 4 - y // 100 + y // 400 - 32045)


def _solar_longitude(jd: float) -> tuple[float, float, float]:
    """Mean longitude q, apparent longitude L and obliquity e, all in degrees."""
    d = jd - J2000
    g = _normalize_angle_360(357.529 + 0.98560028 * d)
    q = _normalize_angle_360(280.459 + 0.98564736 * d)
    L = _normalize_angle_360(q + 1.915 * math.sin(_deg2rad(g)) + 0.020 * math.sin(_deg2rad(2 * g)))
    e = 23.439 - 0.00000036 * d
    return q, L, e


def solar_declination(jd: float) -> float:
    """Solar declination in degrees."""
    _, L, e = _solar_longitude(jd)
    return _rad2deg(math.asin(math.sin(_deg2rad(e)) * math.sin(_deg2rad(L))))


def equation_of_time(jd: float) -> float:
    """Equation of time in hours (mean longitude minus right ascension)."""
    q, L, e = _solar_longitude(jd)
    ra = _rad2deg(math.atan2(math.cos(_deg2rad(e)) * math.sin(_deg2rad(L)), math.cos(_deg2rad(L))))
    # q and RA live in different branches of the circle
    diff = _normalize_angle_360(q - ra + 180.0) - 180.0
    return diff / 15.0


def solar_noon(longitude: float, eqt: float) -> float:
    """Solar noon (Dhuhr) as decimal UTC hours."""
    return 12.0 - longitude / 15.0 - eqt


def _hour_angle(latitude: float, decl: float, altitude: float) -> float | None:
    """
    Hours from solar noon until the sun stands at ``altitude`` degrees.
    Returns None if the sun never reaches that altitude (polar day/night).
    """
    lat_r = _deg2rad(latitude)
    decl_r = _deg2rad(decl)
    cos_h = (math.sin(_deg2rad(altitude)) - math.sin(decl_r) * math.sin(lat_r)) / (
        math.cos(decl_r) * math.cos(lat_r)
    )
    if cos_h < -1 or cos_h > 1 or math.isnan(cos_h):
        return None
    return _rad2deg(math.acos(cos_h)) / 15.0


def time_for_angle(
    jd: float,
    latitude: float,
    longitude: float,
    zenith: float,
    before_noon: bool,
) -> float | None:
    """UTC decimal hour at which the sun crosses ``zenith``, or None when it never does."""
    decl = solar_declination(jd)
    noon = solar_noon(longitude, equation_of_time(jd))
    t = _hour_angle(latitude, decl, 90.0 - zenith)
    if t is None:
        return None
    return noon - t if before_noon else noon + t


def asr_altitude(latitude: float, decl: float, shadow_factor: int) -> float:
    """Solar altitude (degrees) at which an object's shadow reaches the Asr length."""
    return _rad2deg(math.atan(1.0 / (shadow_factor + math.tan(_deg2rad(abs(latitude - decl))))))


def asr_time(jd: float, latitude: float, longitude: float, shadow_factor: int) -> float | None:
    """UTC decimal hour of Asr, or None when the altitude is never reached."""
    decl = solar_declination(jd)
    noon = solar_noon(longitude, equation_of_time(jd))
    t = _hour_angle(latitude, decl, asr_altitude(latitude, decl, shadow_factor))
    if t is None:
        return None
    return noon + t


def qibla_bearing(coordinate: GeoCoordinate) -> float:
    """Initial great-circle bearing from ``coordinate`` to the Kaaba, degrees in [0, 360)."""
    if coordinate.latitude == KAABA_LATITUDE and coordinate.longitude == KAABA_LONGITUDE:
        return 0.0
    lat1 = _deg2rad(coordinate.latitude)
    lat2 = _deg2rad(KAABA_LATITUDE)
    d_lon = _deg2rad(KAABA_LONGITUDE - coordinate.longitude)
    y = math.sin(d_lon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(d_lon)
    bearing = _normalize_angle_360(_rad2deg(math.atan2(y, x)))
    return _normalize_angle_360(round(bearing, 1))


def format_time(hour: int, minute: int, use_12_hour_clock: bool = False) -> str:
    """'HH:mm' in 24h mode, 'h:mm AM/PM' in 12h mode."""
    if use_12_hour_clock:
        suffix = "AM" if hour < 12 else "PM"
        return f"{hour % 12 or 12}:{minute:02d} {suffix}"
    return f"{hour:02d}:{minute:02d}"


def parse_formatted_time(text: str) -> tuple[int, int]:
    """Parse 'HH:mm' or 'h:mm AM/PM' back into a 24h (hour, minute) pair."""
    value = text.strip().upper()
    suffix = None
    if value.endswith(("AM", "PM")):
        value, suffix = value[:-2].strip(), value[-2:]
    parts = value.split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValueError(f"time must be HH:mm or h:mm AM/PM, got {text!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if suffix is not None:
        if not 1 <= hour <= 12:
            raise ValueError(f"12-hour clock hour out of range: {text!r}")
        hour = hour % 12 + (12 if suffix == "PM" else 0)
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"time out of range: {text!r}")
    return hour, minute


def _to_seconds_of_day(utc_hours: float, utc_offset_minutes: int) -> int:
    local = _normalize_hour_24(utc_hours + utc_offset_minutes / 60.0)
    return int(math.floor(local * 3600)) % SECONDS_PER_DAY


def _build_result(
    name: PrayerName,
    day: date,
    seconds_of_day: int,
    utc_offset_minutes: int,
    use_12_hour_clock: bool,
    estimated: bool,
) -> PrayerTimeResult:
    hour, rest = divmod(seconds_of_day, 3600)
    minute, second = divmod(rest, 60)
    tz = timezone(timedelta(minutes=utc_offset_minutes))
    local = datetime(day.year, day.month, day.day, hour, minute, second, tzinfo=tz)
    return PrayerTimeResult(
        name=name,
        timestamp=int(local.timestamp()) * 1000,
        hour=hour,
        minute=minute,
        second=second,
        formatted=format_time(hour, minute, use_12_hour_clock),
        estimated=estimated,
    )


def compute_request(request: CalculationRequest) -> DailyResult:
    """Compute the six daily times and the Qibla bearing for one request."""
    coord = request.coordinate
    day = request.calendar_date
    lat, lng = coord.latitude, coord.longitude
    params = method_parameters(request.method)
    factor = asr_shadow_factor(request.madhab)
    offset = request.utc_offset_minutes
    if offset is None:
        offset = local_mean_time_offset(lng)

    jd = julian_day(day.year, day.month, day.day)
    noon = solar_noon(lng, equation_of_time(jd))

    def _fallback(name: PrayerName, fallback_utc: float) -> tuple[float, bool]:
        logger.warning(
            "Sun never reaches the %s angle at (%.4f, %.4f) on %s; using fallback time",
            name.value, lat, lng, day.isoformat(),
        )
        return fallback_utc, True

    def _solve(name: PrayerName, zenith: float, before_noon: bool) -> tuple[float, bool]:
        hours = time_for_angle(jd, lat, lng, zenith, before_noon)
        if hours is None:
            return _fallback(name, noon)
        return hours, False

    solved: dict[PrayerName, tuple[float, bool]] = {
        PrayerName.FAJR: _solve(PrayerName.FAJR, 90.0 + params.fajr_angle, True),
        PrayerName.SUNRISE: _solve(PrayerName.SUNRISE, SUNRISE_SUNSET_ZENITH, True),
        PrayerName.DHUHR: (noon, False),
        PrayerName.MAGHRIB: _solve(PrayerName.MAGHRIB, SUNRISE_SUNSET_ZENITH, False),
    }
    asr = asr_time(jd, lat, lng, factor)
    if asr is None:
        # 15:00 on the local clock
        asr_utc = ASR_FALLBACK_HOUR - offset / 60.0
        solved[PrayerName.ASR] = _fallback(PrayerName.ASR, asr_utc)
    else:
        solved[PrayerName.ASR] = (asr, False)

    seconds = {
        name: _to_seconds_of_day(hours, offset)
        for name, (hours, _) in solved.items()
    }
    flags = {name: estimated for name, (_, estimated) in solved.items()}

    if params.isha_interval_minutes is not None:
        seconds[PrayerName.ISHA] = (
            seconds[PrayerName.MAGHRIB] + params.isha_interval_minutes * 60
        ) % SECONDS_PER_DAY
        flags[PrayerName.ISHA] = flags[PrayerName.MAGHRIB]
    else:
        isha, flags[PrayerName.ISHA] = _solve(PrayerName.ISHA, 90.0 + params.isha_angle, False)
        seconds[PrayerName.ISHA] = _to_seconds_of_day(isha, offset)

    prayers = tuple(
        _build_result(name, day, seconds[name], offset, request.use_12_hour_clock, flags[name])
        for name in PRAYER_ORDER
    )
    return DailyResult(
        date=day,
        coordinate=coord,
        prayers=prayers,
        qibla_bearing=qibla_bearing(coord),
        utc_offset_minutes=offset,
    )


def compute(
    coordinate: GeoCoordinate,
    calendar_date: date,
    method: CalculationMethod | str = CalculationMethod.MWL,
    madhab: Madhab | str = Madhab.SHAFI,
    use_12_hour_clock: bool = False,
    utc_offset_minutes: int | None = None,
) -> DailyResult:
    """
    Get prayer times and Qibla bearing for one day.
    utc_offset_minutes: minutes east of UTC for the local wall clock (e.g. 180 for UTC+3);
    None uses local mean solar time at the coordinate's longitude.
    """
    return compute_request(
        CalculationRequest(
            coordinate=coordinate,
            calendar_date=calendar_date,
            method=method,
            madhab=madhab,
            use_12_hour_clock=use_12_hour_clock,
            utc_offset_minutes=utc_offset_minutes,
        )
    )


def compute_range(
    coordinate: GeoCoordinate,
    start: date,
    days: int,
    method: CalculationMethod | str = CalculationMethod.MWL,
    madhab: Madhab | str = Madhab.SHAFI,
    use_12_hour_clock: bool = False,
    utc_offset_minutes: int | None = None,
) -> list[DailyResult]:
    """Consecutive daily results starting at ``start``."""
    if days < 1:
        raise ValueError("days must be at least 1")
    try:
        dates = [start + timedelta(days=i) for i in range(days)]
    except OverflowError:
        raise ValueError(f"{days} days from {start.isoformat()} runs past the last date") from None
    return [
        compute(
            coordinate,
            day,
            method,
            madhab,
            use_12_hour_clock,
            utc_offset_minutes,
        )
        for day in dates
    ]


def coordinate_from_location(location: Mapping[str, Any]) -> GeoCoordinate:
    """Build a GeoCoordinate from a stored location record (latitude/longitude or lat/lng keys)."""
    lat = location.get("latitude", location.get("lat"))
    lng = location.get("longitude", location.get("lng"))
    if lat is None or lng is None:
        label = location.get("city") or location.get("label") or "location"
        raise MissingCoordinateError(f"{label} must have latitude and longitude coordinates")
    return GeoCoordinate(float(lat), float(lng))


# Checked in order; the first substring match wins
_CITY_METHODS: tuple[tuple[tuple[str, ...], CalculationMethod], ...] = (
    (("dubai",), CalculationMethod.DUBAI),
    (("makkah", "mecca"), CalculationMethod.MAKKAH),
)

_COUNTRY_METHODS: tuple[tuple[tuple[str, ...], CalculationMethod], ...] = (
    (("saudi", "arabia"), CalculationMethod.MAKKAH),
    (("egypt",), CalculationMethod.EGYPT),
    (("united states", "usa", "america"), CalculationMethod.ISNA),
    (("canada",), CalculationMethod.ISNA),
    (("pakistan",), CalculationMethod.KARACHI),
    (("iran",), CalculationMethod.TEHRAN),
    (("turkey",), CalculationMethod.TURKEY),
    (("france",), CalculationMethod.FRANCE),
    (("russia",), CalculationMethod.RUSSIA),
    (("kuwait",), CalculationMethod.KUWAIT),
    (("qatar",), CalculationMethod.QATAR),
    (("uae", "emirates"), CalculationMethod.GULF),
    (("singapore",), CalculationMethod.SINGAPORE),
    (("malaysia",), CalculationMethod.JAKIM),
    (("indonesia",), CalculationMethod.KEMENAG),
    (("tunisia",), CalculationMethod.TUNISIA),
    (("algeria",), CalculationMethod.ALGERIA),
    (("morocco", "maroc"), CalculationMethod.MOROCCO),
    (("portugal",), CalculationMethod.PORTUGAL),
)


def suggested_method(location: Mapping[str, Any]) -> CalculationMethod:
    """Calculation method customary for a location record's city or country, MWL otherwise."""
    city = (location.get("city") or "").strip().lower()
    country = (location.get("country") or "").strip().lower()
    for needles, method in _CITY_METHODS:
        if any(n in city for n in needles):
            return method
    for needles, method in _COUNTRY_METHODS:
        if any(n in country for n in needles):
            return method
    return CalculationMethod.MWL
