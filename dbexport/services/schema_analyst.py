import logging
from typing import List

import requests

from ..core import config
from ..schemas.database import TableSchema

logger = logging.getLogger(__name__)

NO_ANALYSIS = "No analysis generated."
ANALYSIS_UNAVAILABLE = "Could not generate an analysis. Make sure GEMINI_API_KEY is configured for this deployment."


def describe_schema(tables: List[TableSchema]) -> str:
    return "\n".join(
        f"Table: {t.name} ({t.row_count} rows). Columns: {', '.join(t.columns)}"
        for t in tables
    )


def build_prompt(file_name: str, tables: List[TableSchema]) -> str:
    return (
        f'You are a database expert. I have an SQLite file named "{file_name}".\n'
        f"Here is its schema:\n"
        f"{describe_schema(tables)}\n\n"
        "Please provide a brief, professional summary (2-3 sentences) of what this database likely "
        "contains based on the table names and columns.\n"
        "Identify any particularly interesting tables for export.\n"
        f"Respond in {config.SUMMARY_LANGUAGE}."
    )


def _extract_text(payload: dict) -> str:
    parts = payload["candidates"][0]["content"]["parts"]
    return "".join(part.get("text", "") for part in parts).strip()


def analyze_schema(file_name: str, tables: List[TableSchema]) -> str:
    """
    Asks Gemini for a short summary of the schema.
    Never raises: any failure is logged and a placeholder text is returned instead.
    """
    if not config.GEMINI_API_KEY:
        logger.warning("[AI] GEMINI_API_KEY is not set, skipping analysis of %s", file_name)
        return ANALYSIS_UNAVAILABLE

    url = f"{config.GEMINI_API_URL}/models/{config.GEMINI_MODEL}:generateContent"
    body = {"contents": [{"parts": [{"text": build_prompt(file_name, tables)}]}]}
    try:
        response = requests.post(
            url,
            params={"key": config.GEMINI_API_KEY},
            json=body,
            timeout=config.SUMMARY_TIMEOUT,
        )
        response.raise_for_status()
        text = _extract_text(response.json())
    except requests.RequestException as e:
        logger.error("[AI] Gemini request failed for %s: %s", file_name, e)
        return ANALYSIS_UNAVAILABLE
    except (KeyError, IndexError, TypeError, ValueError) as e:
        logger.error("[AI] Unexpected Gemini response for %s: %s", file_name, e)
        return ANALYSIS_UNAVAILABLE

    return text or NO_ANALYSIS
