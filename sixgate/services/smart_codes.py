"""
Smart-code services: format validation, versioning and tenant-scoped search.

A smart code looks like ``HERA.SALON.SVC.HAIRCUT.v2``: the literal ``HERA``, one
or more uppercase segments, and a trailing positive version. Format validity and
existence within a tenant are reported separately and never folded together.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
import re
from typing import Optional

import sixgate.config as config
from sixgate.errors import SmartCodeMalformed, SmartCodeUnknown
from sixgate.services.guardrails import require_organization
from sixgate.services.shared import (
    MAX_SHORT_TEXT_LENGTH,
    _validate_optional_text,
    _validate_required_text,
    logger,
    service_tool,
)
from sixgate.store import RowStore, open_store

SMART_CODE_PATTERN = re.compile(r"^HERA((?:\.[A-Z0-9_]+)+)\.v([1-9][0-9]*)$")

SMART_CODE_TABLES: tuple[str, ...] = (
    "core_entities",
    "core_dynamic_data",
    "core_relationships",
    "universal_transactions",
    "universal_transaction_lines",
)


@dataclass(frozen=True)
class SmartCode:
    raw: str
    segments: tuple[str, ...]
    version: int

    @property
    def base_code(self) -> str:
        return "HERA." + ".".join(self.segments)

    @property
    def meaning(self) -> str:
        return " ".join(self.segments).lower()

    @property
    def industry(self) -> str:
        return self.segments[0]

    def with_version(self, version: int) -> str:
        return f"{self.base_code}.v{version}"


def try_parse_smart_code(code: object) -> Optional[SmartCode]:
    if not isinstance(code, str):
        return None
    match = SMART_CODE_PATTERN.match(code.strip())
    if not match:
        return None
    segments = tuple(match.group(1).lstrip(".").split("."))
    return SmartCode(raw=code.strip(), segments=segments, version=int(match.group(2)))


def parse_smart_code(code: object, *, field: str = "smart_code") -> SmartCode:
    parsed = try_parse_smart_code(code)
    if parsed is None:
        raise SmartCodeMalformed(
            f"{field} '{code}' does not match HERA.<SEGMENTS>.v<N>",
            data={"field": field, "smart_code": code},
        )
    return parsed


def is_valid_format(code: object) -> bool:
    return try_parse_smart_code(code) is not None


def extract_version(code: object) -> Optional[int]:
    parsed = try_parse_smart_code(code)
    return parsed.version if parsed else None


def base_code(code: object) -> Optional[str]:
    parsed = try_parse_smart_code(code)
    return parsed.base_code if parsed else None


def smart_code_meaning(code: object) -> Optional[str]:
    parsed = try_parse_smart_code(code)
    return parsed.meaning if parsed else None


def is_gl_code(code: object) -> bool:
    parsed = try_parse_smart_code(code)
    return parsed is not None and "GL" in parsed.segments


def tenant_code_usage(store: RowStore, organization_id: str) -> Counter:
    """Count smart-code occurrences across a capped window of the tenant's rows; used by search."""
    usage: Counter = Counter()
    for table in SMART_CODE_TABLES:
        rows = store.select(
            table,
            {"organization_id": organization_id},
            limit=config.SMART_CODE_SCAN_LIMIT,
        )
        for row in rows:
            code = row.get("smart_code")
            if code:
                usage[code] += 1
    return usage


def code_in_use(store: RowStore, organization_id: str, code: str) -> bool:
    return any(
        store.select(table, {"organization_id": organization_id, "smart_code": code}, limit=1)
        for table in SMART_CODE_TABLES
    )


def code_usage_count(store: RowStore, organization_id: str, code: str) -> int:
    return sum(
        store.count(table, {"organization_id": organization_id, "smart_code": code})
        for table in SMART_CODE_TABLES
    )


def sibling_versions(store: RowStore, organization_id: str, parsed: SmartCode) -> list[int]:
    """Versions of ``parsed.base_code`` present anywhere in the tenant, ascending."""
    prefix = f"{parsed.base_code}.v"
    versions = set()
    for table in SMART_CODE_TABLES:
        codes = store.distinct(
            table,
            "smart_code",
            {"organization_id": organization_id, "smart_code__startswith": prefix},
        )
        for code in codes:
            sibling = try_parse_smart_code(code)
            if sibling and sibling.base_code == parsed.base_code:
                versions.add(sibling.version)
    return sorted(versions)


def version_report(parsed: SmartCode, versions: list[int]) -> dict:
    """Sibling versions of ``parsed`` in use and whether a newer one exists."""
    latest_version = max(versions) if versions else None
    upgrade_available = latest_version is not None and latest_version > parsed.version
    return {
        "base_code": parsed.base_code,
        "versions": list(versions),
        "codes": [parsed.with_version(version) for version in versions],
        "latest_version": latest_version,
        "latest_code": parsed.with_version(latest_version) if latest_version else None,
        "upgrade_available": upgrade_available,
        "suggested_code": parsed.with_version(latest_version) if upgrade_available else None,
    }


def find_versions(store: RowStore, organization_id: str, base: str) -> dict:
    """All versions of ``base`` in use by the tenant. ``base`` may carry a version."""
    parsed = try_parse_smart_code(base) or parse_smart_code(f"{base}.v1", field="base_code")
    return version_report(parsed, sibling_versions(store, organization_id, parsed))


def ensure_smart_code(
    store: RowStore,
    organization_id: str,
    code: object,
    *,
    require_existing: bool = False,
    field: str = "smart_code",
) -> tuple[SmartCode, dict]:
    """Format gate, then optional existence gate; returns the parsed code and its version report."""
    parsed = parse_smart_code(code, field=field)
    report = find_versions(store, organization_id, parsed.raw)
    report["exists"] = code_in_use(store, organization_id, parsed.raw)
    if require_existing and not report["exists"]:
        raise SmartCodeUnknown(
            f"{field} '{parsed.raw}' is not in use in this organization",
            data={"smart_code": parsed.raw, "latest_code": report["latest_code"]},
        )
    if report["upgrade_available"]:
        logger.info(
            "smart_code_upgrade_available",
            extra={"smart_code": parsed.raw, "suggested_code": report["suggested_code"]},
        )
    return parsed, report


@service_tool
def validate_smart_code(
    organization_id: str,
    smart_code: str,
    store: Optional[RowStore] = None,
) -> dict:
    """Report format validity, tenant existence and version status of a smart code."""
    org_id = require_organization(organization_id)
    _validate_required_text(smart_code, "smart_code", MAX_SHORT_TEXT_LENGTH)

    parsed = try_parse_smart_code(smart_code)
    if parsed is None:
        return {
            "status": "ok",
            "smart_code": smart_code,
            "format_valid": False,
            "exists": False,
            "version": None,
            "base_code": None,
            "correction": SmartCodeMalformed.correction,
        }

    with open_store(store) as rows:
        usage_count = code_usage_count(rows, org_id, parsed.raw)
        report = find_versions(rows, org_id, parsed.raw)
    return {
        "status": "ok",
        "smart_code": parsed.raw,
        "format_valid": True,
        "exists": usage_count > 0,
        "usage_count": usage_count,
        "version": parsed.version,
        "meaning": parsed.meaning,
        "is_gl": is_gl_code(parsed.raw),
        **report,
    }


@service_tool
def search_smart_codes(
    organization_id: str,
    search_text: str,
    industry: Optional[str] = None,
    module: Optional[str] = None,
    store: Optional[RowStore] = None,
) -> dict:
    """Free-text search over the smart codes a tenant uses."""
    org_id = require_organization(organization_id)
    _validate_required_text(search_text, "search_text", MAX_SHORT_TEXT_LENGTH)
    _validate_optional_text(industry, "industry", MAX_SHORT_TEXT_LENGTH)
    _validate_optional_text(module, "module", MAX_SHORT_TEXT_LENGTH)

    phrase = search_text.strip().lower()
    industry_prefix = f"HERA.{industry.strip().upper()}." if industry and industry.strip() else None
    module_token = module.strip().upper() if module and module.strip() else None

    with open_store(store) as rows:
        usage = tenant_code_usage(rows, org_id)

    matches = []
    for code, count in usage.items():
        parsed = try_parse_smart_code(code)
        if industry_prefix and not code.startswith(industry_prefix):
            continue
        if module_token and module_token not in code:
            continue
        meaning = parsed.meaning if parsed else None
        if phrase not in code.lower() and not (meaning and phrase in meaning):
            continue
        matches.append({
            "smart_code": code,
            "meaning": meaning,
            "version": parsed.version if parsed else None,
            "format_valid": parsed is not None,
            "usage_count": count,
        })

    matches.sort(key=lambda item: (-item["usage_count"], item["smart_code"]))
    total = len(matches)
    capped = matches[: config.SMART_CODE_SEARCH_LIMIT]
    return {
        "status": "ok",
        "search_text": search_text,
        "count": len(capped),
        "total_matches": total,
        "smart_codes": capped,
    }
