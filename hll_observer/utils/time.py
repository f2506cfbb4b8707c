from datetime import datetime
import pytz


def now_in(timezone_name: str = "UTC"):
    try:
        tz = pytz.timezone(timezone_name)
    except pytz.UnknownTimeZoneError:
        tz = pytz.utc
    return datetime.now(tz)


def fmt_updated(timezone_name: str = "UTC", dtobj: datetime | None = None):
    dtobj = dtobj or now_in(timezone_name)
    return dtobj.strftime("%Y-%m-%d %H:%M:%S %Z")
