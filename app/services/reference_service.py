"""
Reference data from third-party providers.

Countries are fetched from ``COUNTRIES_API_URL`` (REST Countries by default)
and returned as ``[{name, code, flag}]`` sorted by name. Upstream failures
surface as UpstreamError (502).
"""

import logging

import requests
from flask import current_app

from app.core.exceptions import UpstreamError

logger = logging.getLogger(__name__)


def _normalize_country(raw: dict) -> dict | None:
    name = raw.get("name")
    if isinstance(name, dict):
        name = name.get("common")
    if not name:
        return None
    flags = raw.get("flags") or {}
    return {
        "name": name,
        "code": raw.get("cca2") or name[:2].upper(),
        "flag": flags.get("svg") or flags.get("png") if isinstance(flags, dict) else None,
    }


def fetch_countries(session: requests.Session | None = None) -> list[dict]:
    url = current_app.config["COUNTRIES_API_URL"]
    timeout = current_app.config.get("COUNTRIES_API_TIMEOUT", 10)
    http = session or requests
    try:
        response = http.get(url, timeout=timeout)
        response.raise_for_status()
        payload = response.json()
    except requests.Timeout:
        logger.warning("Countries provider timed out after %ss", timeout)
        raise UpstreamError("Country provider timed out")
    except (requests.RequestException, ValueError) as exc:
        logger.warning("Countries provider failed: %s", exc)
        raise UpstreamError("Country provider unavailable")

    if not isinstance(payload, list):
        raise UpstreamError("Unexpected response from country provider")
    countries = [c for c in (_normalize_country(item) for item in payload if isinstance(item, dict)) if c]
    return sorted(countries, key=lambda c: c["name"])
