"""Instruction prompt for provider-based note parsing.

Reference dates are computed here with the same helpers the heuristic
resolvers use, so the provider and the fallback agree on what "demain" or
"lundi prochain" means.
"""

from datetime import datetime

from vocaltasks.services.timezone import (
    MONDAY,
    SATURDAY,
    add_days,
    next_weekday,
    to_iso_date,
    weekday_name_fr,
)

PROMPT_TEMPLATE = """Tu es un assistant qui transforme des notes vocales en français en tâches structurées.

CONTEXTE TEMPOREL:
- Timezone: {timezone}
- Aujourd'hui: {weekday} {today}
- Demain: {tomorrow}
- Lundi prochain: {next_monday}

Tu DOIS retourner un objet JSON strict:
{{
  "title": "...",
  "note": "...",
  "date": "YYYY-MM-DD" | null,
  "time": "HH:MM"
}}

RÈGLES IMPORTANTES:
1. DATES - Convertir les expressions relatives en dates absolues YYYY-MM-DD:
   - "après-demain" → {after_tomorrow}
   - "demain" → {tomorrow}
   - "dans X jours" → ajouter X jours à {today}
   - "ce weekend", "le week-end" → samedi prochain {saturday}
   - Dates explicites en français (sans année) → déduire l'année:
     - Ex: "mercredi 18 janvier" / "18 janvier" / "18/01" / "18-01"
     - Si la date (jour+mois) est déjà passée ou égale à {today}, utiliser l'année suivante, sinon l'année en cours
   - "lundi/mardi/mercredi/jeudi/vendredi/samedi/dimanche" → la date du PROCHAIN jour de ce nom, jamais aujourd'hui
   - "lundi prochain", "mardi prochain" → le prochain jour de ce nom
   - "la semaine prochaine" → lundi prochain {next_monday}
   - "aujourd'hui" → {today}
   - Si AUCUNE date n'est mentionnée → null

2. HEURES - Format HH:MM (24h):
   - "à 14h", "à 14h30" → "14:00", "14:30" (une heure explicite l'emporte sur "matin", "soir"...)
   - "ce matin" → "09:00"
   - "cet après-midi" → "14:00"
   - "ce soir" → "19:00"
   - "à midi" → "12:00"
   - Si aucune heure → "09:00"

3. TITRE: 3-6 mots maximum, clair et actionnable, en français
4. NOTE: Résumé synthétique (1-2 phrases) du besoin, en français. Laisse de côté la transcription brute, concentre-toi sur l'intention + les éléments à prendre en compte (contexte, priorité, obstacles). Ne fais PAS un copier-coller du texte original.

Retourne UNIQUEMENT le JSON. Pas d'explication, pas de markdown.

Entrée utilisateur: {text}"""


def build_prompt(text: str, reference: datetime, timezone_name: str) -> str:
    today = reference.date()
    return PROMPT_TEMPLATE.format(
        timezone=timezone_name,
        weekday=weekday_name_fr(today),
        today=to_iso_date(today),
        tomorrow=to_iso_date(add_days(today, 1)),
        after_tomorrow=to_iso_date(add_days(today, 2)),
        saturday=to_iso_date(next_weekday(today, SATURDAY)),
        next_monday=to_iso_date(next_weekday(today, MONDAY)),
        text=text,
    )
