"""Checklist rating roll-up.

Each type's average is the mean rating of its rated items; 'Not Checked' and
'Not Applicable' items are left out, and a type with nothing rated averages 0.
The overall rating is the plain mean of the type averages, so every type counts
the same no matter how many items it has. Values are rounded half-up to 2 places.
"""

import math
from decimal import Decimal, ROUND_HALF_UP

MAX_RATING = 5
MIN_RATING = 0

STATUS_WEIGHTS = {
    'Excellent': 5,
    'Good': 4,
    'Average': 3,
    'Fair': 2.5,
    'Poor': 1,
    'Not Checked': 0,
    'Not Applicable': 0,
}

EXCLUDED_STATUSES = ('Not Checked', 'Not Applicable')


def round2(value):
    return float(Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def clamp_rating(value):
    """Clamp a client supplied rating into [0, 5]; missing or unparseable values count as 0."""
    if value is None:
        return 0.0
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value):
        return 0.0
    return min(max(value, MIN_RATING), MAX_RATING)


def item_rating(item):
    """Rating used for one checklist item: its own rating if given, else its status weight."""
    if item.get('rating') is not None:
        return clamp_rating(item.get('rating'))
    return float(STATUS_WEIGHTS.get(item.get('status'), 0))


def is_rated(item):
    return item.get('status') not in EXCLUDED_STATUSES


def type_average(items):
    rated = [item_rating(it) for it in items or [] if is_rated(it)]
    if not rated:
        return 0.0
    return round2(sum(rated) / len(rated))


def _mean_of_averages(averages):
    # each type counts once, whatever its item count
    if not averages:
        return 0.0
    return round2(sum(averages) / len(averages))


def overall_rating(types):
    return _mean_of_averages([type_average(t.get('checklistItems')) for t in types or []])


def apply_ratings(types):
    """Return (types, overall) with every averageRating recomputed; incoming averages are ignored."""
    out = []
    for t in types or []:
        items = []
        for it in t.get('checklistItems') or []:
            row = dict(it)
            row['rating'] = item_rating(it)
            items.append(row)
        row = dict(t)
        row['checklistItems'] = items
        row['averageRating'] = type_average(items)
        out.append(row)
    return out, _mean_of_averages([t['averageRating'] for t in out])
