# insights.py
import re
from collections import namedtuple


HIGH_BP = 'High Blood Pressure'
HIGH_SUGAR = 'High Blood Sugar'
LONG_TERM_MEDICATION = 'Long-term medication dependency'

LEADING_INT = re.compile(r'\s*([+-]?[0-9]+)')

Insight = namedtuple('Insight', ['score', 'risks', 'suggestions'])


def parse_sugar(value):
    # Leading integer of the reading, 0 when there is none
    match = LEADING_INT.match(str(value or ''))
    return int(match.group(1)) if match else 0


def analyze(vitals, prescription_count):
    """Score a patient's health from their vitals and prescription count.

    Starts at 100 and subtracts 20 for blood pressure readings mentioning
    140 or 150, 20 for sugar above 140 and 10 for more than three
    prescriptions.
    """
    vitals = vitals or {}
    bp = vitals.get('bp') or ''
    sugar = parse_sugar(vitals.get('sugar'))

    score = 100
    risks = []
    suggestions = []

    if '140' in bp or '150' in bp:
        risks.append(HIGH_BP)
        score -= 20

    if sugar > 140:
        risks.append(HIGH_SUGAR)
        score -= 20

    if prescription_count > 3:
        risks.append(LONG_TERM_MEDICATION)
        score -= 10

    if score < 80:
        suggestions.append('Lifestyle improvement recommended')
    if HIGH_BP in risks:
        suggestions.append('Reduce salt intake')
    if HIGH_SUGAR in risks:
        suggestions.append('Avoid sugar and carbs')

    if not risks:
        risks.append('No major risks detected')
    if not suggestions:
        suggestions.append('Keep following current treatment')

    return Insight(score, risks, suggestions)
