import os
from dataclasses import dataclass

from prayer_times import CalculationMethod, Madhab, parse_madhab


@dataclass(frozen=True)
class Settings:
    method: str = CalculationMethod.MWL.value
    madhab: Madhab = Madhab.SHAFI
    max_days: int = 31
    use_12_hour_clock: bool = False
    log_level: str = "INFO"


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_settings(environ=None) -> Settings:
    """Read service defaults from PRAYER_TIMES_* and LOG_LEVEL environment variables."""
    env = os.environ if environ is None else environ
    return Settings(
        method=env.get("PRAYER_TIMES_METHOD", CalculationMethod.MWL.value),
        madhab=parse_madhab(env.get("PRAYER_TIMES_MADHAB", Madhab.SHAFI.value)),
        max_days=int(env.get("PRAYER_TIMES_MAX_DAYS", 31)),
        use_12_hour_clock=_env_bool(env.get("PRAYER_TIMES_12H"), False),
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
    )
