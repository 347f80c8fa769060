import datetime
import json
import logging

from django.conf import settings
from google import genai
from google.genai import types

logger = logging.getLogger(__name__)

_client = None

SYSTEM_PROMPT = """You are a helpful assistant for the Jeevan blood donation system.
Current Date: {today}

Available Blood Banks:
{banks}

You can help users book appointments.
1. If the user wants to book an appointment, ask for the Blood Bank Name and the Date (YYYY-MM-DD).
2. If you have both the Blood Bank Name (matched to an ID) and the Date, you MUST output a JSON object strictly in this format:

{{"action": "book_appointment", "bloodBankId": "EXACT_ID_FROM_LIST", "date": "YYYY-MM-DD", "bankName": "NAME_OF_BANK"}}

Do not include any other text with the JSON. Just the JSON string.
If the user is just chatting, respond normally."""

HEALTH_PROMPT = """Act as a friendly medical assistant for a blood donor.
Analyze these health stats recorded after a blood donation:
- Hemoglobin: {hemoglobin} g/dL
- Blood Pressure: {bloodPressure}
- Weight: {weight} kg
- Pulse: {pulse} bpm

Provide a very short (max 2 sentences) personalized health tip or positive reinforcement based on these numbers.
Focus on nutrition or hydration if any value is borderline, otherwise give a general "Keep it up!" message.
Do not give medical advice or diagnosis. Keep it encouraging."""


class GeminiNotConfigured(Exception):
    pass


def get_client():
    global _client
    if not settings.GEMINI_API_KEY:
        raise GeminiNotConfigured("Gemini API key not configured")
    if _client is None:
        _client = genai.Client(api_key=settings.GEMINI_API_KEY)
    return _client


def banks_context(banks):
    lines = []
    for bank in banks:
        city = (bank.get('address') or {}).get('city')
        lines.append(f"{bank.get('name')} (ID: {bank['_id']}, City: {city})")
    return "\n".join(lines)


def _history_contents(history):
    contents = []
    for turn in history or []:
        role = 'model' if turn.get('role') in ('model', 'assistant') else 'user'
        parts = turn.get('parts')
        if parts:
            text = " ".join(p.get('text', '') for p in parts if isinstance(p, dict))
        else:
            text = turn.get('content') or turn.get('text') or ''
        if text:
            contents.append(types.Content(role=role, parts=[types.Part(text=text)]))
    return contents


def chat_reply(message, banks, history=None):
    """Ask Gemini for the next assistant turn, with the bank list in the system prompt."""
    client = get_client()
    prompt = SYSTEM_PROMPT.format(
        today=datetime.date.today().isoformat(),
        banks=banks_context(banks),
    )
    contents = _history_contents(history)
    contents.append(types.Content(role='user', parts=[types.Part(text=message)]))

    response = client.models.generate_content(
        model=settings.GEMINI_MODEL,
        contents=contents,
        config=types.GenerateContentConfig(
            system_instruction=prompt,
            temperature=0.7,
            max_output_tokens=400,
        )
    )
    return (response.text or '').strip()


def parse_booking_action(text):
    """Return the booking action dict if the reply is one, else None."""
    clean = text.replace('```json', '').replace('```', '').strip()
    if not (clean.startswith('{') and clean.endswith('}')):
        return None
    try:
        action = json.loads(clean)
    except ValueError:
        return None
    if isinstance(action, dict) and action.get('action') == 'book_appointment':
        return action
    return None


def health_insight(stats):
    client = get_client()
    prompt = HEALTH_PROMPT.format(
        hemoglobin=stats.get('hemoglobin'),
        bloodPressure=stats.get('bloodPressure'),
        weight=stats.get('weight'),
        pulse=stats.get('pulse'),
    )
    response = client.models.generate_content(model=settings.GEMINI_MODEL, contents=prompt)
    return (response.text or '').strip()
