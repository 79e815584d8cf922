"""
Slot Option Builder

Строит варианты брони (смежные часовые слоты одного корта) из сырых
слотов доступности. Детерминирован для одного снимка слотов и длительности.
"""

from typing import Dict, Iterable, List, Optional, Set

from shared.models.booking import BookingOption, Slot

from .resolvers import hour_of


def _add_hours(time_str: str, inc: int) -> Optional[str]:
    """Сдвиг времени на inc часов без перехода через полночь"""
    hour = hour_of(time_str)
    if hour is None:
        return None
    nxt = hour + inc
    if nxt >= 24:
        return None
    return f"{nxt:02d}:{time_str[3:5]}"


def build_options(slots: Iterable[Slot], duration: int) -> List[BookingOption]:
    """
    Варианты брони для запрошенной длительности

    Слоты группируются по корту; для каждого времени начала строится
    последовательность из duration часовых шагов, вариант валиден только
    если каждый шаг есть в слотах того же корта.

    Args:
        slots: Сырые слоты (корт + время начала)
        duration: Длительность в часах (>= 1)

    Returns:
        Варианты в порядке: корты по первому появлению, время по возрастанию
    """
    if duration < 1:
        return []

    by_court: Dict[str, Set[str]] = {}
    for slot in slots:
        by_court.setdefault(slot.court, set()).add(slot.time)

    options: List[BookingOption] = []
    for court, available in by_court.items():
        for start in sorted(available):
            times = []
            for step in range(duration):
                current = _add_hours(start, step)
                if current is None or current not in available:
                    break
                times.append(current)
            else:
                options.append(BookingOption(start=start, times=times, court=court))
    return options


def unique_starts(options: Iterable[BookingOption]) -> List[BookingOption]:
    """Один вариант на время начала (первый корт выигрывает, порядок стабилен)"""
    seen: Dict[str, BookingOption] = {}
    for option in options:
        if option.start not in seen:
            seen[option.start] = option
    return list(seen.values())


def start_times(options: Iterable[BookingOption]) -> List[str]:
    """Различные времена начала, отсортированные по часу"""
    return sorted((o.start for o in unique_starts(options)), key=lambda t: (hour_of(t), t))


def pick_closest_options(
    options: Iterable[BookingOption],
    desired_time: Optional[str],
    limit: int,
    exclude: Optional[Iterable[str]] = None
) -> List[BookingOption]:
    """
    N вариантов, ближайших к желаемому времени

    Args:
        options: Все варианты
        desired_time: Желаемое время HH:MM (None - первые по порядку)
        limit: Максимум вариантов
        exclude: Времена начала, которые не нужно предлагать

    Returns:
        Варианты, отсортированные по расстоянию в часах, затем по часу
    """
    excluded = set(exclude or [])
    unique = [o for o in unique_starts(options) if o.start not in excluded]
    target = hour_of(desired_time)
    if target is None:
        return sorted(unique, key=lambda o: (hour_of(o.start), o.start))[:limit]
    ranked = sorted(
        unique,
        key=lambda o: (abs(hour_of(o.start) - target), hour_of(o.start), o.start)
    )
    return ranked[:limit]


def find_option(
    options: Iterable[BookingOption],
    time_str: Optional[str],
    allow_afternoon: bool = False
) -> Optional[BookingOption]:
    """
    Вариант с точным временем начала

    Args:
        options: Варианты из кэша
        time_str: Время HH:MM
        allow_afternoon: Для двусмысленного часа совпадает и вариант +12 ч
    """
    if not time_str:
        return None
    options = list(options)
    for option in options:
        if option.start == time_str:
            return option
    if allow_afternoon:
        hour = hour_of(time_str)
        if hour is not None and hour + 12 <= 23:
            shifted = f"{hour + 12:02d}:{time_str[3:5]}"
            for option in options:
                if option.start == shifted:
                    return option
    return None
