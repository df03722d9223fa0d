"""
AI Assistant Service - generative text, certificate OCR and speech.

Thin wrappers over the OpenAI API used for:
1. Drafting notification emails (generate_text)
2. Writing short trainer bios
3. Executive summaries of the registry
4. Reading certificate images into structured fields
5. Extracting a certification number from a photographed ID card
6. Spoken announcement of a verification result

Every call degrades to None (or placeholder text for the executive summary)
when no API key is configured, the request fails, or the reply is unusable.
Callers treat that as "feature unavailable"; nothing here raises.
"""

import os
import re
import json
import time
from typing import List, Optional

from openai import OpenAI, OpenAIError

from registry.logging_config import get_logger, log_with_context

logger = get_logger("ai")

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_TTS_MODEL = os.getenv("OPENAI_TTS_MODEL", "gpt-4o-mini-tts")
OPENAI_TTS_VOICE = os.getenv("OPENAI_TTS_VOICE", "alloy")
AI_OUTPUT_LANGUAGE = os.getenv("AI_OUTPUT_LANGUAGE", "Arabic")
INSTITUTION_NAME = os.getenv("INSTITUTION_NAME", "International Legal Academy (ILA-CLT)")

INSIGHTS_UNAVAILABLE = "AI insights are currently unavailable."

# Loose shape of a certification number inside OCR output
CERTIFICATION_ID_PATTERN = re.compile(r"[A-Z]{2,}(?:-[A-Z]{2,})*-\d{4}-\d{4}")

client = None
if OPENAI_API_KEY:
    client = OpenAI(api_key=OPENAI_API_KEY)
else:
    log_with_context(logger, "WARNING",
                     "OPENAI_API_KEY is not set. AI features will report as unavailable.")


def _image_url(base64_image: str) -> str:
    """Accept a data URI or bare base64 and return a data URI."""
    if base64_image.startswith("data:"):
        return base64_image
    return "data:image/jpeg;base64,{}".format(base64_image)


def _complete(messages: list, response_format: dict = None, purpose: str = "text") -> Optional[str]:
    """Run one chat completion and return its text, or None."""
    if client is None:
        return None
    start_time = time.time()
    kwargs = {"model": OPENAI_MODEL, "messages": messages}
    if response_format:
        kwargs["response_format"] = response_format
    try:
        response = client.chat.completions.create(**kwargs)
        text = response.choices[0].message.content
    except (OpenAIError, IndexError, AttributeError) as e:
        log_with_context(logger, "ERROR", "AI {} request failed: {}".format(purpose, e),
                         extra_data={"model": OPENAI_MODEL})
        return None

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO", "AI {} request completed".format(purpose),
                     extra_data={"model": OPENAI_MODEL, "duration_ms": round(duration_ms, 2)})
    return text.strip() if text and text.strip() else None


def generate_text(prompt: str, purpose: str = "text") -> Optional[str]:
    return _complete([{"role": "user", "content": prompt}], purpose=purpose)


def generate_trainer_bio(name: str, specialties: List[str]) -> Optional[str]:
    prompt = (
        "Write a professional short bio ({}) for {}, a {} legal trainer "
        "specializing in {}. Keep it executive and under 80 words."
    ).format(AI_OUTPUT_LANGUAGE, name, INSTITUTION_NAME, ", ".join(specialties))
    return generate_text(prompt, purpose="bio")


def get_executive_insights(trainers: List[dict]) -> str:
    """
    Three-sentence summary of workforce health and coverage.

    Returns INSIGHTS_UNAVAILABLE instead of None so the console always has
    something to show.
    """
    data_summary = [
        {"name": t.get("full_name"), "status": t.get("status"), "specialties": t.get("specialties", [])}
        for t in trainers
    ]
    prompt = (
        "Analyze this legal trainer registry data and provide a concise 3-sentence "
        "executive summary in {}. Focus on workforce health and strategic coverage. "
        "Data: {}"
    ).format(AI_OUTPUT_LANGUAGE, json.dumps(data_summary, ensure_ascii=False))
    return generate_text(prompt, purpose="insights") or INSIGHTS_UNAVAILABLE


def analyze_certificate_image(base64_image: str) -> Optional[dict]:
    """
    Read a certificate image into {full_name, expiry_date, certification_id}.

    Returns None unless the reply is a JSON object with at least a full name.
    """
    text = _complete(
        [{
            "role": "user",
            "content": [
                {"type": "text", "text": (
                    "Extract the following details from this official certificate: "
                    "full_name, expiry_date (YYYY-MM-DD) and certification_id. "
                    "Return strict JSON with exactly those keys; use null for unknown values."
                )},
                {"type": "image_url", "image_url": {"url": _image_url(base64_image)}},
            ],
        }],
        response_format={"type": "json_object"},
        purpose="certificate-ocr",
    )
    if text is None:
        return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        log_with_context(logger, "WARNING", "Certificate OCR returned malformed JSON",
                         extra_data={"preview": text[:120]})
        return None
    if not isinstance(data, dict) or not data.get("full_name"):
        return None
    return {
        "full_name": data.get("full_name"),
        "expiry_date": data.get("expiry_date") or None,
        "certification_id": data.get("certification_id") or None,
    }


def extract_id_from_card(base64_image: str) -> Optional[str]:
    text = _complete(
        [{
            "role": "user",
            "content": [
                {"type": "text", "text": (
                    "Extract the certification ID (format: PREFIX-YYYY-NNNN, "
                    "e.g. ILA-CLT-2024-0001) from this card. Return ONLY the ID string."
                )},
                {"type": "image_url", "image_url": {"url": _image_url(base64_image)}},
            ],
        }],
        purpose="card-id",
    )
    if text is None:
        return None
    match = CERTIFICATION_ID_PATTERN.search(text.upper())
    return match.group(0) if match else text.strip()


def speak_verification_result(name: str, status: str) -> Optional[bytes]:
    """Synthesize an audio announcement (mp3 bytes) for a verified trainer."""
    if client is None:
        return None
    text = (
        "Verification successful. Member: {}. Current Status: {}. "
        "This is an official record of the {}."
    ).format(name, status, INSTITUTION_NAME)
    try:
        response = client.audio.speech.create(
            model=OPENAI_TTS_MODEL,
            voice=OPENAI_TTS_VOICE,
            input=text,
        )
        audio = response.content
    except (OpenAIError, AttributeError) as e:
        log_with_context(logger, "ERROR", "Speech synthesis failed: {}".format(e),
                         extra_data={"model": OPENAI_TTS_MODEL})
        return None
    return audio or None
