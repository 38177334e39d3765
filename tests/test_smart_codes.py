import pytest

import sixgate.config as config
from sixgate.services import entities
from sixgate.services import smart_codes
from sixgate.services.transactions import post_transaction
from sixgate.services.smart_codes import (
    base_code,
    extract_version,
    is_gl_code,
    is_valid_format,
    smart_code_meaning,
    try_parse_smart_code,
)


@pytest.mark.parametrize(
    "code, version, base",
    [
        ("HERA.X.Y.v3", 3, "HERA.X.Y"),
        ("HERA.SALON.SVC.HAIRCUT.v2", 2, "HERA.SALON.SVC.HAIRCUT"),
        ("HERA.ACCOUNTING.GL.LINE.v1", 1, "HERA.ACCOUNTING.GL.LINE"),
        ("HERA.REST_POS.ORDER.v12", 12, "HERA.REST_POS.ORDER"),
    ],
)
def test_valid_codes_expose_version_and_base(code, version, base):
    assert is_valid_format(code)
    assert extract_version(code) == version
    assert base_code(code) == base


@pytest.mark.parametrize(
    "code",
    ["HERA.x.y.v1", "HERA.X.v0", "FOO.X.v1", "HERA.v1", "HERA.X.Y", "HERA..X.v1", "", None, 42],
)
def test_invalid_codes_have_no_version(code):
    assert not is_valid_format(code)
    assert extract_version(code) is None
    assert base_code(code) is None


def test_meaning_and_version_bump():
    parsed = try_parse_smart_code("HERA.SALON.SVC.HAIRCUT.v2")
    assert smart_code_meaning(parsed.raw) == "salon svc haircut"
    assert parsed.industry == "SALON"
    assert parsed.with_version(3) == "HERA.SALON.SVC.HAIRCUT.v3"


def test_gl_codes_need_a_gl_segment():
    assert is_gl_code("HERA.ACCOUNTING.GL.ADJUSTMENT.v1")
    assert not is_gl_code("HERA.SALON.GLOSS.v1")
    assert not is_gl_code("HERA.gl.x.v1")


def test_validate_reports_format_and_existence_separately(server_db, tenants):
    malformed = smart_codes.validate_smart_code(tenants.a, "HERA.bad.code")
    assert malformed["status"] == "ok"
    assert malformed["format_valid"] is False
    assert malformed["version"] is None

    unknown = smart_codes.validate_smart_code(tenants.a, "HERA.SALON.CUSTOMER.v1")
    assert unknown["format_valid"] is True
    assert unknown["exists"] is False

    entities.create_entity(tenants.a, "customer", "Ava", smart_code="HERA.SALON.CUSTOMER.v1")
    entities.create_entity(tenants.a, "customer", "Ben", smart_code="HERA.SALON.CUSTOMER.v2")

    known = smart_codes.validate_smart_code(tenants.a, "HERA.SALON.CUSTOMER.v1")
    assert known["exists"] is True
    assert known["versions"] == [1, 2]
    assert known["upgrade_available"] is True
    assert known["suggested_code"] == "HERA.SALON.CUSTOMER.v2"

    other_tenant = smart_codes.validate_smart_code(tenants.b, "HERA.SALON.CUSTOMER.v1")
    assert other_tenant["exists"] is False


def test_find_versions_lists_tenant_siblings(server_db, tenants, store):
    entities.create_entity(tenants.a, "product", "Gel", smart_code="HERA.SALON.PRODUCT.v1")
    entities.create_entity(tenants.a, "product", "Wax", smart_code="HERA.SALON.PRODUCT.v3")
    entities.create_entity(tenants.b, "product", "Oil", smart_code="HERA.SALON.PRODUCT.v4")

    found = smart_codes.find_versions(store, tenants.a, "HERA.SALON.PRODUCT")
    assert found["versions"] == [1, 3]
    assert found["codes"] == ["HERA.SALON.PRODUCT.v1", "HERA.SALON.PRODUCT.v3"]
    assert found["latest_code"] == "HERA.SALON.PRODUCT.v3"

    assert smart_codes.find_versions(store, tenants.a, "HERA.SALON.PRODUCT.v1")["latest_version"] == 3


def test_search_filters_by_industry_and_caps_results(server_db, tenants):
    for index in range(12):
        entities.create_entity(tenants.a, "service", f"Service {index}", smart_code=f"HERA.SALON.SVC.ITEM{index}.v1")
    entities.create_entity(tenants.a, "dish", "Pasta", smart_code="HERA.REST.SVC.PASTA.v1")

    result = smart_codes.search_smart_codes(tenants.a, "svc", industry="salon")
    assert result["status"] == "ok"
    assert result["total_matches"] == 12
    assert result["count"] == 10
    assert all(item["smart_code"].startswith("HERA.SALON.") for item in result["smart_codes"])

    by_meaning = smart_codes.search_smart_codes(tenants.a, "svc pasta")
    assert [item["smart_code"] for item in by_meaning["smart_codes"]] == ["HERA.REST.SVC.PASTA.v1"]

    assert smart_codes.search_smart_codes(tenants.b, "svc")["count"] == 0


def test_search_requires_organization(server_db):
    result = smart_codes.search_smart_codes("", "svc")
    assert result["guardrail"] == "ORG_FILTER_MISSING"
    assert result["correction"]


def test_existence_ignores_the_search_scan_cap(server_db, tenants, monkeypatch):
    monkeypatch.setattr(config, "SMART_CODE_SCAN_LIMIT", 2)
    for name, code in (("X", "HERA.A.X.v1"), ("Y", "HERA.A.Y.v1"), ("Z", "HERA.A.Z.v1"), ("Z2", "HERA.A.Z.v2")):
        entities.create_entity(tenants.a, "item", name, smart_code=code)

    posted = post_transaction(
        tenants.a,
        "HERA.A.Z.v1",
        [{"amount": 10}],
        allow_new_smart_code=False,
    )
    assert posted["status"] == "posted"
    assert posted["smart_code_warning"]["suggested_code"] == "HERA.A.Z.v2"

    report = smart_codes.validate_smart_code(tenants.a, "HERA.A.X.v1")
    assert report["exists"] is True
    assert report["usage_count"] == 1
