from datetime import datetime

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def _display(hhmm: str) -> str:
    return datetime.strptime(hhmm, "%H:%M").strftime("%I:%M %p").lstrip("0")


def format_opening_hours(hours: list[dict]) -> str:
    """Render the weekly hours table returned by the backend."""
    if not hours:
        return "⏰ **Opening Hours**\n\nThis restaurant has not published its opening hours yet."

    by_day = {h["day"]: h for h in hours}
    lines = ["⏰ **Opening Hours**", ""]
    for day in WEEKDAYS:
        entry = by_day.get(day)
        if not entry or entry.get("closed"):
            lines.append(f"{day.capitalize()}: Closed")
        else:
            lines.append(f"{day.capitalize()}: {_display(entry['open'])} – {_display(entry['close'])}")
    return "\n".join(lines)
