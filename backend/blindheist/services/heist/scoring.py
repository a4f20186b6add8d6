import math
from typing import Any, Dict

DIFFICULTY_MULTIPLIERS = {'easy': 1, 'medium': 1.5, 'hard': 2}


def star_rating(loot_ratio: float, times_detected: int) -> int:
    if loot_ratio >= 0.9 and times_detected <= 2:
        return 3
    if loot_ratio >= 0.6 and times_detected <= 5:
        return 2
    return 1


def calculate_final_score(state) -> Dict[str, Any]:
    """Score breakdown for a match, read only from stored state.

    loot + 2 per second left + stealth (100 - 20 per detection, floored at 0)
    + 10 per close call, times the difficulty multiplier and floored.
    """
    stats = state.stats
    loot_score = sum(item.value for item in state.collected_loot)
    time_bonus = int(math.floor(state.alarm.countdown * 2))
    stealth_bonus = max(0, 100 - stats.times_detected * 20)
    close_call_bonus = stats.close_call_count * 10
    multiplier = DIFFICULTY_MULTIPLIERS.get(state.difficulty, 1)

    subtotal = loot_score + time_bonus + stealth_bonus + close_call_bonus
    total = int(math.floor(subtotal * multiplier))

    possible = state.total_loot_value
    ratio = loot_score / possible if possible else 0.0

    return {
        'lootScore': loot_score,
        'timeBonus': time_bonus,
        'stealthBonus': stealth_bonus,
        'closeCallBonus': close_call_bonus,
        'difficultyMultiplier': multiplier,
        'total': total,
        'stars': star_rating(ratio, stats.times_detected),
        'timeUsed': state.elapsed_seconds,
        'lootCollected': len(state.collected_loot),
        'totalLoot': len(state.loot),
        'timesDetected': stats.times_detected,
        'peakAlarm': stats.peak_alarm,
    }
