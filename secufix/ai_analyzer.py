# secufix/ai_analyzer.py
import json
import logging

from openai import OpenAI, APIError  # Groq exposes an OpenAI-compatible API

from .config import ScanConfig

logger = logging.getLogger(__name__)

# Packages that have shipped malicious releases in the past
KNOWN_COMPROMISED_PACKAGES = {"event-stream", "flatmap-stream"}
MALICIOUS_KEYWORDS = ("malicious", "backdoor", "compromised")

PROMPT_TEMPLATE = """Analyze the following {file_name} dependencies for security vulnerabilities.

{focus}

Your response MUST be a valid JSON object following this structure:

{{
    "fileName": "{file_name}",
    "summary": "Brief summary of the security risks.",
    "vulnerabilities": {{
        "high": [
            {{ "packageName": "lodash", "version": "4.17.0", "description": "Why it's risky", "recommendation": "What to do", "isMalicious": false }}
        ],
        "medium": [],
        "low": []
    }},
    "recommendations": [
        "General security recommendations"
    ]
}}

IMPORTANT RULES:
- DO NOT include explanations, additional text, or Markdown formatting.
- DO NOT include anything outside the JSON object.
- If there are no vulnerabilities, return "vulnerabilities": {{ "high": [], "medium": [], "low": [] }}.
- If a package has been previously compromised, set "isMalicious": true.

Here is the {file_name} file content:
{content}
"""


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```") and cleaned.endswith("```"):
        cleaned = cleaned[3:-3].strip()
        if cleaned.startswith("json"):
            cleaned = cleaned[4:].strip()
    return cleaned


def is_malicious(entry: dict) -> bool:
    description = str(entry.get("description", "")).lower()
    return (entry.get("isMalicious") is True
            or any(word in description for word in MALICIOUS_KEYWORDS)
            or entry.get("packageName") in KNOWN_COMPROMISED_PACKAGES)


def _validate_review(parsed, file_name: str) -> dict:
    if not isinstance(parsed, dict):
        raise ValueError("review is not a JSON object")
    buckets = parsed.get("vulnerabilities")
    if not isinstance(buckets, dict):
        raise ValueError("review has no 'vulnerabilities' object")
    for level in ("high", "medium", "low"):
        entries = buckets.get(level) or []
        if not isinstance(entries, list):
            raise ValueError(f"'vulnerabilities.{level}' is not a list")
        buckets[level] = [e for e in entries if isinstance(e, dict)]
    parsed.setdefault("fileName", file_name)
    parsed.setdefault("summary", "")
    parsed.setdefault("recommendations", [])
    return parsed


def review_manifest(content: str, file_name: str, config: ScanConfig, client=None, malware_only: bool = False) -> dict:
    """
    Asks the AI reviewer for a structured opinion on a manifest. Advisory only:
    any failure (missing key, API error, malformed output) comes back as
    {"fileName": ..., "error": ...} instead of raising.
    """
    if not content or not isinstance(content, str):
        return {"fileName": file_name, "error": "Invalid manifest content provided"}
    if client is None:
        if not config.ai_api_key:
            logger.warning("AI API key not found in environment variables or config.yaml. AI review will be skipped.")
            return {"fileName": file_name, "error": "AI review skipped: API key not available."}
        client = OpenAI(api_key=config.ai_api_key, base_url=config.ai_base_url)

    focus = ("Focus specifically on packages with known malware, backdoors, "
             "or that have been compromised in the past." if malware_only else "")
    prompt = PROMPT_TEMPLATE.format(file_name=file_name, focus=focus, content=content)

    logger.info(f"Sending {file_name} to the AI reviewer ({config.ai_model})...")
    try:
        chat_completion = client.chat.completions.create(
            messages=[
                {"role": "system", "content": "You are a helpful cybersecurity assistant."},
                {"role": "user", "content": prompt},
            ],
            model=config.ai_model,
            temperature=0.2,
        )
    except APIError as e:
        logger.error(f"AI API returned an API Error: {e}")
        return {"fileName": file_name, "error": f"AI review failed: API Error ({e})"}

    if not chat_completion.choices or not chat_completion.choices[0].message:
        return {"fileName": file_name, "error": "AI review failed: unexpected response structure from API."}
    response_text = chat_completion.choices[0].message.content or ""

    try:
        review = _validate_review(json.loads(strip_code_fences(response_text)), file_name)
    except ValueError as e:
        logger.error(f"Failed to parse AI response as JSON: {e}")
        logger.debug(f"Raw response: {response_text}")
        return {"fileName": file_name, "error": "AI reviewer didn't return valid JSON."}

    if malware_only:
        return {
            "fileName": review["fileName"],
            "summary": "Malicious packages that require immediate attention",
            "vulnerabilities": {
                "high": [e for e in review["vulnerabilities"]["high"] if is_malicious(e)],
                "medium": [],
                "low": [],
            },
            "recommendations": [
                "Remove all malicious packages immediately",
                "Scan your system for potential backdoors",
                "Reset any secrets that might have been compromised",
            ],
        }
    return review


def get_malicious_packages(content: str, file_name: str, config: ScanConfig, client=None,
                           review: dict | None = None) -> dict:
    """
    Package names flagged as malicious plus one recommendation line each.
    An existing review can be passed in to avoid a second API call.
    """
    if review is None:
        review = review_manifest(content, file_name, config, client=client, malware_only=True)
    if "error" in review:
        return {"maliciousPackages": [], "recommendations": [], "error": review["error"]}
    flagged = [entry for entry in review["vulnerabilities"]["high"] if is_malicious(entry)]
    return {
        "maliciousPackages": [entry.get("packageName") for entry in flagged],
        "recommendations": [
            f"{entry.get('packageName')}@{entry.get('version')}: {entry.get('recommendation')}" for entry in flagged
        ],
    }
