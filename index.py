import logging
from datetime import date as Date, datetime

from fastapi import FastAPI, HTTPException

from prayer_times import (
    METHOD_PARAMETERS,
    DailyResult,
    GeoCoordinate,
    compute,
    compute_range,
    qibla_bearing,
)
from settings import load_settings

settings = load_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Prayer Times API",
    description="API service for calculating Islamic prayer times and the Qibla direction",
    version="1.0.0"
)


@app.get("/")
def root():
    return {
        "service": "Prayer Times API",
        "status": "online",
        "endpoints": {
            "/api/timesForGPS": "Get prayer times for GPS coordinates",
            "/api/prayerTimes": "Get the full daily result for GPS coordinates",
            "/api/qibla": "Get the Qibla bearing for GPS coordinates",
            "/api/methods": "List calculation methods",
        }
    }


def _coordinate(lat: float, lng: float) -> GeoCoordinate:
    try:
        return GeoCoordinate(lat, lng)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


def _parse_date(value: str | None) -> Date:
    if value is None:
        return Date.today()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise HTTPException(status_code=422, detail="date must be YYYY-MM-DD")


@app.get("/api/timesForGPS")
def get_times_for_gps(
    lat: float,
    lng: float,
    date: str | None = None,
    days: int = 1,
    timezoneOffset: int | None = None,  # Minutes east of UTC, e.g. 180; omitted = local mean solar time
    calculationMethod: str = settings.method,
    madhab: str = settings.madhab.value,
    use12Hour: bool = settings.use_12_hour_clock,
):
    coordinate = _coordinate(lat, lng)
    start_date = _parse_date(date)
    if days > settings.max_days:
        raise HTTPException(status_code=422, detail=f"days must be at most {settings.max_days}")

    try:
        results = compute_range(
            coordinate,
            start_date,
            days,
            method=calculationMethod,
            madhab=madhab,
            use_12_hour_clock=use12Hour,
            utc_offset_minutes=timezoneOffset,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    response_times = {}
    estimated = {}
    for daily in results:
        date_key = daily.date.isoformat()
        # [0]: Fajr, [1]: Sunrise, [2]: Dhuhr, [3]: Asr, [4]: Maghrib, [5]: Isha
        response_times[date_key] = [p.formatted for p in daily.prayers]
        if daily.estimated:
            estimated[date_key] = [name.value for name in daily.estimated]

    logger.info("Computed %d day(s) for (%.4f, %.4f) from %s", days, lat, lng, start_date)
    return {"times": response_times, "estimated": estimated, "qibla": results[0].qibla_bearing}


@app.get("/api/prayerTimes")
def get_prayer_times(
    lat: float,
    lng: float,
    date: str | None = None,
    timezoneOffset: int | None = None,
    calculationMethod: str = settings.method,
    madhab: str = settings.madhab.value,
    use12Hour: bool = settings.use_12_hour_clock,
):
    coordinate = _coordinate(lat, lng)
    try:
        daily: DailyResult = compute(
            coordinate,
            _parse_date(date),
            method=calculationMethod,
            madhab=madhab,
            use_12_hour_clock=use12Hour,
            utc_offset_minutes=timezoneOffset,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return daily.to_dict()


@app.get("/api/qibla")
def get_qibla(lat: float, lng: float):
    return {"qibla": qibla_bearing(_coordinate(lat, lng))}


@app.get("/api/methods")
def list_methods():
    return {
        method.value: {
            "fajrAngle": params.fajr_angle,
            "ishaAngle": params.isha_angle,
            "ishaIntervalMinutes": params.isha_interval_minutes,
        }
        for method, params in METHOD_PARAMETERS.items()
    }
