"""
Daily ranking aggregation.

Sessions are grouped per lowercase address and summed. The ordering is:
score descending, bonus hits descending, penalty hits ascending, then the
earliest session of the day, then address. The last two keys only resolve
exact ties so the result never depends on input order.
"""

from typing import Dict, Iterable, List, Optional

from prizepool.data_models.settlement import DailyRanking, RankingEntry, SessionRow


def ranking_sort_key(entry: RankingEntry):
    return (-entry.score, -entry.bonus_hits, entry.penalty_hits, entry.first_played_ms, entry.player)


def aggregate_sessions(rows: Iterable[SessionRow]) -> List[RankingEntry]:
    """Sum session rows per player and return them in ranking order."""
    totals: Dict[str, List[int]] = {}
    for row in rows:
        player = row.player.lower()
        current = totals.get(player)
        if current is None:
            totals[player] = [row.points, row.bonus_hits, row.penalty_hits, row.timestamp_ms]
        else:
            current[0] += row.points
            current[1] += row.bonus_hits
            current[2] += row.penalty_hits
            current[3] = min(current[3], row.timestamp_ms)

    entries = [
        RankingEntry(
            player=player,
            score=score,
            bonus_hits=bonus,
            penalty_hits=penalty,
            first_played_ms=first_ms,
        )
        for player, (score, bonus, penalty, first_ms) in totals.items()
    ]
    entries.sort(key=ranking_sort_key)
    return entries


def build_daily_ranking(day_id: int, rows: Iterable[SessionRow]) -> DailyRanking:
    return DailyRanking(day_id=day_id, entries=tuple(aggregate_sessions(rows)))


def winner_slots(ranking: DailyRanking, slots: int) -> List[Optional[str]]:
    """
    Winners for each rank, padded with None for ranks nobody filled.

    Ranks stay positional: index 0 is rank 1.
    """
    winners: List[Optional[str]] = [entry.player for entry in ranking.top(slots)]
    winners.extend([None] * (slots - len(winners)))
    return winners


def rank_of(ranking: DailyRanking, player: str) -> Optional[int]:
    """1-based position of a player in the ranking, None if absent."""
    player = player.lower()
    for position, entry in enumerate(ranking.entries, start=1):
        if entry.player == player:
            return position
    return None
