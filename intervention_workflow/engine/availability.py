"""Availability Matching - Shared windows across participants' availabilities

For every day, each pair of participants whose windows overlap by at least
``MIN_OVERLAP_MINUTES`` seeds a candidate window; other participants are
folded in as long as the shared window stays that long. A window's score is
the share of all participants (everyone who entered availabilities for the
intervention) it covers, so 100 means nobody is missing.
"""
from datetime import date
from itertools import combinations
from typing import Dict, List, Tuple

from ..domain.models import (
    Availability, AvailabilityConflict, AvailabilityMatchResult, AvailabilityParticipant,
    MatchedSlot, MatchStatistics, PartialMatch
)
from ..utils.time import minutes_of_day

MIN_OVERLAP_MINUTES = 30
MAX_RESULTS = 10


def format_minutes(minutes: int) -> str:
    """Minutes since midnight back to ``HH:MM``"""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def participant(availability: Availability) -> AvailabilityParticipant:
    return AvailabilityParticipant(
        user_id=availability.user_id,
        name=availability.user_name,
        role=availability.user_role
    )


def matches_for_day(day_windows: List[Availability], total_users: int) -> List[MatchedSlot]:
    """
    Candidate windows for one day, best first.

    Args:
        day_windows: every window entered for that day
        total_users: participants of the intervention, the score's denominator
    """
    if len({a.user_id for a in day_windows}) < 2:
        return []

    ranges: List[Tuple[int, int, Availability]] = sorted(
        ((minutes_of_day(a.start_time), minutes_of_day(a.end_time), a) for a in day_windows),
        key=lambda r: (r[0], r[1], r[2].user_id)
    )

    found: Dict[Tuple[int, int, frozenset], MatchedSlot] = {}
    for (i, first), (j, second) in combinations(enumerate(ranges), 2):
        if first[2].user_id == second[2].user_id:
            continue
        start, end = max(first[0], second[0]), min(first[1], second[1])
        if end - start < MIN_OVERLAP_MINUTES:
            continue

        members: Dict[str, Availability] = {first[2].user_id: first[2], second[2].user_id: second[2]}
        for k, other in enumerate(ranges):
            if k in (i, j) or other[2].user_id in members:
                continue
            shared_start, shared_end = max(start, other[0]), min(end, other[1])
            if shared_end - shared_start >= MIN_OVERLAP_MINUTES:
                members[other[2].user_id] = other[2]
                start, end = shared_start, shared_end

        key = (start, end, frozenset(members))
        if key in found:
            continue
        found[key] = MatchedSlot(
            slot_date=first[2].slot_date,
            start_time=format_minutes(start),
            end_time=format_minutes(end),
            participants=[participant(a) for a in sorted(members.values(), key=lambda a: a.user_id)],
            match_score=round(100 * len(members) / total_users),
            overlap_minutes=end - start
        )

    return sorted(found.values(), key=lambda m: (-m.match_score, -m.overlap_minutes, m.start_time))


def find_conflicts(availabilities: List[Availability]) -> List[AvailabilityConflict]:
    """Days on which one participant entered overlapping windows"""
    by_user_day: Dict[Tuple[str, date], List[Availability]] = {}
    for a in availabilities:
        by_user_day.setdefault((a.user_id, a.slot_date), []).append(a)

    conflicts = []
    for (user_id, slot_date), windows in sorted(by_user_day.items(), key=lambda item: (item[0][1], item[0][0])):
        overlapping = any(
            minutes_of_day(a.start_time) < minutes_of_day(b.end_time)
            and minutes_of_day(b.start_time) < minutes_of_day(a.end_time)
            for a, b in combinations(windows, 2)
        )
        if overlapping:
            conflicts.append(AvailabilityConflict(
                user_id=user_id,
                name=windows[0].user_name,
                slot_date=slot_date,
                windows=[{"start_time": w.start_time, "end_time": w.end_time} for w in windows]
            ))
    return conflicts


def find_matches(availabilities: List[Availability]) -> AvailabilityMatchResult:
    """Match every participant's windows of an intervention"""
    if not availabilities:
        return AvailabilityMatchResult()

    everyone: Dict[str, AvailabilityParticipant] = {}
    by_day: Dict[date, List[Availability]] = {}
    for a in availabilities:
        everyone.setdefault(a.user_id, participant(a))
        by_day.setdefault(a.slot_date, []).append(a)

    candidates: List[MatchedSlot] = []
    for slot_date in sorted(by_day):
        candidates.extend(matches_for_day(by_day[slot_date], len(everyone)))

    perfect = [m for m in candidates if m.match_score == 100]
    partial = []
    for match in sorted(
        (m for m in candidates if m.match_score < 100),
        key=lambda m: (-m.match_score, m.slot_date, m.start_time)
    ):
        present = {p.user_id for p in match.participants}
        partial.append(PartialMatch(
            slot_date=match.slot_date,
            start_time=match.start_time,
            end_time=match.end_time,
            available_users=match.participants,
            missing_users=[p for user_id, p in sorted(everyone.items()) if user_id not in present],
            match_score=match.match_score
        ))

    return AvailabilityMatchResult(
        perfect_matches=perfect[:MAX_RESULTS],
        partial_matches=partial[:MAX_RESULTS],
        conflicts=find_conflicts(availabilities),
        statistics=MatchStatistics(
            total_users=len(everyone),
            total_windows=len(availabilities),
            best_match_score=max((m.match_score for m in candidates), default=0)
        )
    )
