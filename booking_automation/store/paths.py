"""Firestore document paths"""

APPOINTMENTS = "appointments"
USERS = "users"
STAFF = "staff"
BRANDS = "brands"
LOCATIONS = "locations"
CUSTOMER_METRICS = "customer_metrics"
DAILY_STATS = "daily_stats"
MONTHLY_STATS = "monthly_stats"


def appointment_path(appointment_id: str) -> str:
    return f"{APPOINTMENTS}/{appointment_id}"


def user_path(user_id: str) -> str:
    return f"{USERS}/{user_id}"


def staff_path(staff_id: str) -> str:
    return f"{STAFF}/{staff_id}"


def brand_path(brand_id: str) -> str:
    return f"{BRANDS}/{brand_id}"


def location_path(location_id: str) -> str:
    return f"{LOCATIONS}/{location_id}"


def customer_metric_path(brand_id: str, user_id: str) -> str:
    return f"{BRANDS}/{brand_id}/{CUSTOMER_METRICS}/{user_id}"


def daily_stats_path(location_id: str, date_key: str) -> str:
    return f"{LOCATIONS}/{location_id}/{DAILY_STATS}/{date_key}"


def monthly_stats_path(location_id: str, month_key: str) -> str:
    return f"{LOCATIONS}/{location_id}/{MONTHLY_STATS}/{month_key}"


def parse_customer_metric_path(path: str) -> tuple[str, str]:
    """Return (brand_id, user_id) for brands/{brand}/customer_metrics/{user}"""
    segments = path.split("/")
    if len(segments) != 4 or segments[0] != BRANDS or segments[2] != CUSTOMER_METRICS:
        raise ValueError(f"Not a customer metric path: {path}")
    return segments[1], segments[3]
