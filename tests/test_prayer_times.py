import logging
from datetime import date, timedelta, timezone

import pytest

from prayer_times import (
    METHOD_PARAMETERS,
    CalculationMethod,
    GeoCoordinate,
    Madhab,
    MissingCoordinateError,
    PrayerName,
    asr_shadow_factor,
    compute,
    compute_range,
    coordinate_from_location,
    equation_of_time,
    format_time,
    julian_day,
    local_mean_time_offset,
    method_parameters,
    parse_formatted_time,
    parse_madhab,
    qibla_bearing,
    solar_declination,
    suggested_method,
)

LONDON = GeoCoordinate(51.5074, -0.1278)
MECCA = GeoCoordinate(21.4225, 39.8262)

# London, 2024-01-01, MWL / Shafi, GMT; reference times rounded to the nearest minute
LONDON_NEW_YEAR = {
    PrayerName.FAJR: "06:03",
    PrayerName.SUNRISE: "08:06",
    PrayerName.DHUHR: "12:04",
    PrayerName.ASR: "13:45",
    PrayerName.MAGHRIB: "16:01",
    PrayerName.ISHA: "17:58",
}

# (coordinate, minutes east of UTC) on the March 2024 equinox
CITIES = [
    (GeoCoordinate(30.0444, 31.2357), 120),  # Cairo
    (GeoCoordinate(40.7128, -74.0060), -300),  # New York
    (GeoCoordinate(-6.2088, 106.8456), 420),  # Jakarta
    (GeoCoordinate(-33.8688, 151.2093), 660),  # Sydney
    (LONDON, 0),
]


def _minutes(prayer):
    return prayer.hour * 60 + prayer.minute + prayer.second / 60


def test_julian_day_known_dates():
    assert julian_day(2000, 1, 1) == 2451545.0
    assert julian_day(2024, 1, 1) == 2460311.0
    assert julian_day(1858, 11, 17) == 2400001.0


def test_solar_position_near_solstice():
    jd = julian_day(2024, 6, 21)
    assert solar_declination(jd) == pytest.approx(23.43, abs=0.02)
    assert abs(equation_of_time(jd)) < 0.1


def test_equation_of_time_stays_small_all_year():
    start = julian_day(2024, 1, 1)
    for offset in range(0, 366, 5):
        assert abs(equation_of_time(start + offset)) < 0.3


def test_london_reference_times():
    result = compute(LONDON, date(2024, 1, 1), CalculationMethod.MWL, Madhab.SHAFI, utc_offset_minutes=0)
    for prayer in result.prayers:
        hour, minute = parse_formatted_time(LONDON_NEW_YEAR[prayer.name])
        assert abs(_minutes(prayer) - (hour * 60 + minute)) <= 1, prayer.name
    assert result.estimated == []


def test_london_fajr_timestamp_and_format():
    result = compute(LONDON, date(2024, 1, 1), utc_offset_minutes=0)
    fajr = result.get(PrayerName.FAJR)
    assert (fajr.hour, fajr.minute, fajr.second) == (6, 2, 38)
    assert fajr.timestamp == 1704088958000
    assert fajr.formatted == "06:02"
    assert result.get("Asr").formatted == "13:45"


def test_twelve_hour_formatting():
    result = compute(LONDON, date(2024, 1, 1), use_12_hour_clock=True, utc_offset_minutes=0)
    assert [p.formatted for p in result.prayers] == [
        "6:02 AM",
        "8:06 AM",
        "12:03 PM",
        "1:45 PM",
        "4:01 PM",
        "5:58 PM",
    ]


def test_prayers_in_enumeration_order():
    result = compute(LONDON, date(2024, 1, 1), utc_offset_minutes=0)
    assert [p.name for p in result.prayers] == list(PrayerName)


@pytest.mark.parametrize("coordinate,offset", CITIES)
def test_times_are_chronological(coordinate, offset):
    result = compute(coordinate, date(2024, 3, 20), utc_offset_minutes=offset)
    stamps = [p.timestamp for p in result.prayers]
    assert stamps == sorted(stamps)
    assert len(set(stamps)) == 6


# Called without an offset: wall clock follows local mean solar time
SOLAR_TIME_CITIES = [
    GeoCoordinate(-33.8688, 151.2093),  # Sydney
    GeoCoordinate(-6.2088, 106.8456),  # Jakarta
    GeoCoordinate(34.0522, -118.2437),  # Los Angeles
]


@pytest.mark.parametrize("coordinate", SOLAR_TIME_CITIES)
def test_default_clock_is_local_solar_time(coordinate):
    result = compute(coordinate, date(2024, 3, 20), CalculationMethod.MWL, Madhab.SHAFI, False)
    stamps = [p.timestamp for p in result.prayers]
    assert stamps == sorted(stamps)
    assert result.utc_offset_minutes == round(coordinate.longitude * 4)
    assert result.get(PrayerName.DHUHR).hour == 12
    assert result.get(PrayerName.FAJR).hour < 12 < result.get(PrayerName.ISHA).hour


def test_local_mean_time_offset():
    assert local_mean_time_offset(151.2093) == 605
    assert local_mean_time_offset(-118.2437) == -473
    assert local_mean_time_offset(-0.1278) == -1
    assert local_mean_time_offset(0.0) == 0


def test_utc_offset_shifts_wall_clock_not_instant():
    utc = compute(CITIES[0][0], date(2024, 3, 20), utc_offset_minutes=0)
    local = compute(CITIES[0][0], date(2024, 3, 20), utc_offset_minutes=120)
    assert local.get(PrayerName.DHUHR).hour == utc.get(PrayerName.DHUHR).hour + 2
    assert local.get(PrayerName.DHUHR).timestamp == utc.get(PrayerName.DHUHR).timestamp


def test_compute_is_deterministic():
    first = compute(LONDON, date(2024, 5, 5), CalculationMethod.ISNA, Madhab.HANAFI)
    second = compute(LONDON, date(2024, 5, 5), CalculationMethod.ISNA, Madhab.HANAFI)
    assert first == second


@pytest.mark.parametrize("coordinate,offset", CITIES)
def test_hanafi_asr_is_not_earlier(coordinate, offset):
    for month in (1, 4, 7, 10):
        day = date(2024, month, 15)
        shafi = compute(coordinate, day, madhab=Madhab.SHAFI, utc_offset_minutes=offset)
        hanafi = compute(coordinate, day, madhab=Madhab.HANAFI, utc_offset_minutes=offset)
        for other in (Madhab.MALIKI, Madhab.HANBALI):
            same = compute(coordinate, day, madhab=other, utc_offset_minutes=offset)
            assert same.get(PrayerName.ASR) == shafi.get(PrayerName.ASR)
        assert hanafi.get(PrayerName.ASR).timestamp >= shafi.get(PrayerName.ASR).timestamp


@pytest.mark.parametrize(
    "method", [CalculationMethod.MAKKAH, CalculationMethod.GULF, CalculationMethod.QATAR]
)
def test_interval_isha_follows_maghrib(method):
    for coordinate, offset in CITIES:
        for month in (2, 8):
            result = compute(coordinate, date(2024, month, 10), method, utc_offset_minutes=offset)
            gap = result.get(PrayerName.ISHA).timestamp - result.get(PrayerName.MAGHRIB).timestamp
            assert gap == 90 * 60 * 1000


def test_every_method_has_exactly_one_isha_rule():
    assert set(METHOD_PARAMETERS) == set(CalculationMethod)
    assert len(CalculationMethod) == 22
    for method, params in METHOD_PARAMETERS.items():
        if params.isha_interval_minutes is not None:
            assert method in (CalculationMethod.MAKKAH, CalculationMethod.GULF, CalculationMethod.QATAR)
            assert params.isha_angle == 0
        else:
            assert params.isha_angle > 0


def test_unknown_method_falls_back_to_mwl(caplog):
    with caplog.at_level(logging.WARNING, logger="prayer_times"):
        params = method_parameters("Atlantis")
    assert params == METHOD_PARAMETERS[CalculationMethod.MWL]
    assert "falling back to MWL" in caplog.text
    assert compute(LONDON, date(2024, 1, 1), "Atlantis") == compute(LONDON, date(2024, 1, 1))


def test_method_and_madhab_accept_strings():
    assert method_parameters("Egypt") == METHOD_PARAMETERS[CalculationMethod.EGYPT]
    assert asr_shadow_factor("hanafi") == 2
    assert asr_shadow_factor(Madhab.MALIKI) == 1
    with pytest.raises(ValueError):
        asr_shadow_factor("Zahiri")
    assert parse_madhab(" HANBALI ") is Madhab.HANBALI
    with pytest.raises(ValueError):
        parse_madhab("Zahiri")


def test_summer_twilight_in_london_is_flagged(caplog):
    with caplog.at_level(logging.WARNING, logger="prayer_times"):
        result = compute(LONDON, date(2024, 6, 21))
    assert result.estimated == [PrayerName.FAJR, PrayerName.ISHA]
    dhuhr = result.get(PrayerName.DHUHR)
    for name in (PrayerName.FAJR, PrayerName.ISHA):
        prayer = result.get(name)
        assert (prayer.hour, prayer.minute, prayer.second) == (dhuhr.hour, dhuhr.minute, dhuhr.second)
    assert not result.get(PrayerName.SUNRISE).estimated
    assert "Fajr" in caplog.text and "Isha" in caplog.text


def test_polar_day_uses_fallbacks():
    result = compute(GeoCoordinate(89.0, 0.0), date(2024, 6, 21), utc_offset_minutes=60)
    asr = result.get(PrayerName.ASR)
    assert (asr.hour, asr.minute, asr.second) == (15, 0, 0)
    assert asr.estimated
    assert not result.get(PrayerName.DHUHR).estimated
    assert set(result.estimated) == set(PrayerName) - {PrayerName.DHUHR}


def test_all_times_share_request_date():
    for coordinate, _ in CITIES:
        result = compute(coordinate, date(2024, 3, 20))
        tz = timezone(timedelta(minutes=result.utc_offset_minutes))
        for prayer in result.prayers:
            assert 0 <= prayer.hour < 24
            assert prayer.time.astimezone(tz).date() == date(2024, 3, 20)


def test_qibla_from_london():
    assert qibla_bearing(LONDON) == 119.0
    assert compute(LONDON, date(2024, 1, 1)).qibla_bearing == 119.0


def test_qibla_at_kaaba_is_zero():
    assert qibla_bearing(MECCA) == 0.0


def test_qibla_due_north_and_south_of_mecca():
    south = qibla_bearing(GeoCoordinate(10.0, 39.8262))
    north = qibla_bearing(GeoCoordinate(40.0, 39.8262))
    assert south == 0.0
    assert north == pytest.approx(180.0, abs=0.1)


@pytest.mark.parametrize(
    "lat,lng",
    [(90, 0), (-90, 0), (0, 180), (0, -180), (-21.4225, -140.1738), (45, 179.9), (-60, -179.9)],
)
def test_qibla_always_normalized(lat, lng):
    bearing = qibla_bearing(GeoCoordinate(lat, lng))
    assert 0.0 <= bearing < 360.0


def test_coordinate_validation():
    with pytest.raises(ValueError):
        GeoCoordinate(91, 0)
    with pytest.raises(ValueError):
        GeoCoordinate(0, -181)


def test_coordinate_from_location():
    assert coordinate_from_location({"latitude": 51.5, "longitude": -0.12}) == GeoCoordinate(51.5, -0.12)
    assert coordinate_from_location({"lat": 0, "lng": 0}) == GeoCoordinate(0.0, 0.0)
    with pytest.raises(MissingCoordinateError, match="Guelma"):
        coordinate_from_location({"city": "Guelma", "country": "Algeria", "latitude": 36.46})


def test_compute_range():
    results = compute_range(LONDON, date(2024, 2, 28), 3)
    assert [r.date for r in results] == [date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]
    with pytest.raises(ValueError):
        compute_range(LONDON, date(2024, 2, 28), 0)


def test_compute_range_past_last_date():
    assert len(compute_range(LONDON, date(9999, 12, 31), 1)) == 1
    with pytest.raises(ValueError, match="runs past the last date"):
        compute_range(LONDON, date(9999, 12, 31), 2)


@pytest.mark.parametrize("h24,h12", [("13:05", "1:05 PM"), ("00:30", "12:30 AM"), ("12:00", "12:00 PM"), ("09:07", "9:07 AM")])
def test_format_round_trip(h24, h12):
    hour, minute = parse_formatted_time(h24)
    assert format_time(hour, minute, use_12_hour_clock=True) == h12
    assert parse_formatted_time(h12) == (hour, minute)
    assert format_time(*parse_formatted_time(h12)) == h24


@pytest.mark.parametrize("text", ["25:00", "7", "13:05 PM", "ab:cd"])
def test_parse_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_formatted_time(text)


def test_to_dict():
    payload = compute(LONDON, date(2024, 1, 1)).to_dict()
    assert payload["date"] == "2024-01-01"
    assert payload["qibla"] == 119.0
    assert [p["name"] for p in payload["prayers"]] == [n.value for n in PrayerName]
    assert payload["prayers"][0]["estimated"] is False


@pytest.mark.parametrize(
    "location,expected",
    [
        ({"city": "Dubai", "country": "United Arab Emirates"}, CalculationMethod.DUBAI),
        ({"city": "Makkah", "country": "Saudi Arabia"}, CalculationMethod.MAKKAH),
        ({"city": "Mecca"}, CalculationMethod.MAKKAH),
        ({"city": "Riyadh", "country": "Saudi Arabia"}, CalculationMethod.MAKKAH),
        ({"city": "Abu Dhabi", "country": "United Arab Emirates"}, CalculationMethod.GULF),
        ({"city": "Sharjah", "country": "UAE"}, CalculationMethod.GULF),
        ({"city": "Cairo", "country": "Egypt"}, CalculationMethod.EGYPT),
        ({"city": "Chicago", "country": "United States"}, CalculationMethod.ISNA),
        ({"city": "Toronto", "country": "Canada"}, CalculationMethod.ISNA),
        ({"city": "Karachi", "country": "Pakistan"}, CalculationMethod.KARACHI),
        ({"city": "Istanbul", "country": "  TURKEY "}, CalculationMethod.TURKEY),
        ({"city": "Kuala Lumpur", "country": "Malaysia"}, CalculationMethod.JAKIM),
        ({"city": "Jakarta", "country": "Indonesia"}, CalculationMethod.KEMENAG),
        ({"city": "Guelma", "country": "Algeria"}, CalculationMethod.ALGERIA),
        ({"city": "Rabat", "country": "Maroc"}, CalculationMethod.MOROCCO),
        ({"city": "Lisbon", "country": "Portugal"}, CalculationMethod.PORTUGAL),
        ({"city": "London", "country": "United Kingdom"}, CalculationMethod.MWL),
        ({"city": None, "country": None}, CalculationMethod.MWL),
        ({}, CalculationMethod.MWL),
    ],
)
def test_suggested_method(location, expected):
    assert suggested_method(location) is expected
