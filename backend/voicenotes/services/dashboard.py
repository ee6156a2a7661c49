"""
VoiceNotes Backend — Dashboard Presentation Helpers
=====================================================

Pure functions, no IO:
    html_to_preview()      → plain-text card preview from editor HTML
    group_notes_by_date()  → Today / Yesterday / Previous 7 days /
                             Previous 30 days / "<Month YYYY>" sections
"""

from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Sequence, Tuple, TypeVar

from bs4 import BeautifulSoup

from voicenotes.schemas.note import PREVIEW_LENGTH

T = TypeVar("T")

TODAY = "Today"
YESTERDAY = "Yesterday"
PREVIOUS_7_DAYS = "Previous 7 days"
PREVIOUS_30_DAYS = "Previous 30 days"
FIXED_LABELS = (TODAY, YESTERDAY, PREVIOUS_7_DAYS, PREVIOUS_30_DAYS)


def html_to_preview(html: str, length: int = PREVIEW_LENGTH) -> str:
    """
    Strip tags, collapse whitespace and cut to `length` characters.

        >>> html_to_preview("<p>Buy <b>milk</b></p><ul><li>eggs</li></ul>")
        'Buy milk eggs'
    """
    if not html:
        return ""
    text = BeautifulSoup(html, "html.parser").get_text(separator=" ")
    collapsed = " ".join(text.split())
    return collapsed[:length]


def local_date(moment: datetime, tz) -> date:
    # SQLite hands back naive datetimes; they are stored as UTC
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


def bucket_label(note_day: date, today: date) -> str:
    if note_day == today:
        return TODAY
    if note_day == today - timedelta(days=1):
        return YESTERDAY
    # Future dates (clock skew, imported notes) also land here
    if note_day >= today - timedelta(days=7):
        return PREVIOUS_7_DAYS
    if note_day >= today - timedelta(days=30):
        return PREVIOUS_30_DAYS
    return note_day.strftime("%B %Y")


def group_notes_by_date(
    items: Sequence[T],
    dates: Sequence[datetime],
    now: datetime,
    tz,
) -> List[Tuple[str, List[T]]]:
    """
    Bucket `items` (paired with `dates`) relative to `now` in timezone `tz`.

    Fixed sections come first in their natural order, then month sections in
    order of first appearance. Empty sections are dropped. Items keep their
    input order inside each section.
    """
    today = local_date(now, tz)
    groups: Dict[str, List[T]] = {label: [] for label in FIXED_LABELS}

    for item, moment in zip(items, dates):
        label = bucket_label(local_date(moment, tz), today)
        groups.setdefault(label, []).append(item)

    return [(label, members) for label, members in groups.items() if members]
