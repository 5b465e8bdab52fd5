"""Day summary, eating-habit insight and record milestones."""

import re
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import tzinfo

from chilema.domain.meals import MealRecord, MealType, from_timestamp_ms

MILESTONES = (10, 50, 100)
INSIGHT_WINDOW = 80

_WEEKDAYS = ("周一", "周二", "周三", "周四", "周五", "周六", "周日")

_FOOD_GROUPS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("面食", re.compile(r"面条|拉面|面食|拌面|汤面|米线|粉")),
    ("米饭", re.compile(r"米饭|盖饭|炒饭|寿司")),
    ("咖啡", re.compile(r"咖啡|拿铁|美式")),
)


@dataclass(frozen=True)
class DaySummary:
    """What the timeline shows above a day's meals."""

    meal_count: int
    message: str
    meal_type_counts: dict[MealType, int]
    insight: str | None = None
    milestone: int | None = None


def summarize_day(
    meals: Sequence[MealRecord],
    day_meals: Sequence[MealRecord],
    tz: tzinfo | None = None,
) -> DaySummary:
    """Summarize one day against the recent history, newest first."""
    counts = Counter(record.meal_type for record in day_meals)
    total = len(meals)
    return DaySummary(
        meal_count=len(day_meals),
        message=day_message(day_meals, tz),
        meal_type_counts={kind: counts[kind] for kind in sorted(counts)},
        insight=find_insight(meals[:INSIGHT_WINDOW], tz),
        milestone=total if total in MILESTONES else None,
    )


def day_message(day_meals: Sequence[MealRecord], tz: tzinfo | None = None) -> str:
    """Return the summary sentence, judging how punctual breakfast was."""
    if not day_meals:
        return "今天还没有记录，先从一餐开始吧。"
    count = len(day_meals)
    breakfasts = [r for r in day_meals if r.meal_type is MealType.BREAKFAST]
    if not breakfasts:
        return f"今天吃了 {count} 餐，记得也照顾下早餐哦～"
    first = min(breakfasts, key=lambda record: record.timestamp)
    hour = from_timestamp_ms(first.timestamp, tz).hour
    if hour <= 9:
        remark = "很准时呢！"
    elif hour <= 11:
        remark = "也不错～"
    else:
        remark = "有点晚啦～"
    return f"今天吃了 {count} 餐，早餐{remark}"


def find_insight(meals: Sequence[MealRecord], tz: tzinfo | None = None) -> str | None:
    """Spot a food group eaten repeatedly on the same weekday.

    Only the first matching group of each note counts. Ties go to the
    combination seen first.
    """
    hits: list[tuple[str, str]] = []
    for record in meals:
        text = (record.text or "").strip()
        if not text:
            continue
        label = next(
            (name for name, pattern in _FOOD_GROUPS if pattern.search(text)), None
        )
        if label is None:
            continue
        weekday = _WEEKDAYS[from_timestamp_ms(record.timestamp, tz).weekday()]
        hits.append((weekday, label))

    if len(hits) < 2:
        return None
    (weekday, label), seen = Counter(hits).most_common(1)[0]
    if seen < 2:
        return None
    return f"发现你 {weekday} 常吃{label}"
