"""Tests for field normalisation."""

from __future__ import annotations

import pytest

from accountmatch.matching.models import Account
from accountmatch.matching.normalize import (
    derive_domain,
    extract_email_domain,
    normalize_account,
    normalize_address,
    normalize_company_name,
    normalize_phone,
    normalize_string,
    normalize_website,
    resolve_phone_prefix,
)

# =========================================================================
# normalize_company_name
# =========================================================================


class TestNormalizeCompanyName:
    """Tests for company name normalisation."""

    def test_strips_stacked_suffixes(self):
        assert normalize_company_name("Acme Pty Ltd") == "acme"

    def test_strips_limited(self):
        assert normalize_company_name("ACME LIMITED") == "acme"

    def test_strips_gmbh(self):
        assert normalize_company_name("TechStart GmbH") == "techstart"

    def test_removes_and(self):
        assert normalize_company_name("Smith and Jones Ltd") == "smith jones"

    def test_removes_ampersand(self):
        assert normalize_company_name("Smith & Jones Pty Ltd") == "smith jones"

    def test_keeps_bare_suffix_word(self):
        assert normalize_company_name("Company") == "company"

    def test_suffix_only_stripped_at_end(self):
        assert normalize_company_name("Ltd Solutions") == "ltd solutions"

    def test_transliterates(self):
        assert normalize_company_name("Über Café GmbH") == "uber cafe"

    def test_punctuation_and_whitespace(self):
        assert normalize_company_name("  O'Brien   Builders, Inc. ") == "obrien builders"

    def test_empty(self):
        assert normalize_company_name("") == ""
        assert normalize_company_name(None) == ""


# =========================================================================
# normalize_phone
# =========================================================================


class TestNormalizePhone:
    """Tests for country-aware phone normalisation."""

    def test_international_australian(self):
        assert normalize_phone("+61 2 9999 0000", "Australia") == "299990000"

    def test_local_australian(self):
        assert normalize_phone("(02) 9999 0000", "australia") == "299990000"

    def test_uk_international_and_local_agree(self):
        assert normalize_phone("+44 20 7946 0958", "United Kingdom") == "2079460958"
        assert normalize_phone("020 7946 0958", "UK") == "2079460958"

    def test_new_zealand(self):
        assert normalize_phone("+64 9 123 4567", "New Zealand") == "91234567"
        assert normalize_phone("09 123 4567", "NZ") == "91234567"

    def test_too_short(self):
        assert normalize_phone("1234", "australia") == ""

    def test_empty(self):
        assert normalize_phone("", "australia") == ""
        assert normalize_phone(None) == ""

    def test_unknown_country_uses_default(self):
        assert normalize_phone("0299990000", "Narnia") == "299990000"

    def test_prefix_kept_when_too_few_digits_remain(self):
        assert normalize_phone("612345678", "australia") == "612345678"


class TestResolvePhonePrefix:
    def test_exact_name(self):
        assert resolve_phone_prefix("united kingdom").international == "44"

    def test_alias(self):
        assert resolve_phone_prefix("GB").international == "44"

    def test_substring(self):
        assert resolve_phone_prefix("Commonwealth of Australia").international == "61"

    def test_default(self):
        assert resolve_phone_prefix(None).international == "61"
        assert resolve_phone_prefix("Narnia").international == "61"


# =========================================================================
# Website / email
# =========================================================================


class TestNormalizeWebsite:
    def test_strips_scheme_www_path_and_query(self):
        assert normalize_website("https://www.Acme.com.au/about?ref=x") == "acme.com.au"

    def test_trailing_slash(self):
        assert normalize_website("acme.com.au/") == "acme.com.au"

    def test_repeated_www_and_scheme(self):
        assert normalize_website("www.www.acme.com") == "acme.com"
        assert normalize_website("http://www.www.acme.com/x") == "acme.com"
        assert normalize_website("https://http://acme.com") == "acme.com"

    def test_plain_http(self):
        assert normalize_website("http://acme.com") == "acme.com"

    def test_empty(self):
        assert normalize_website("") == ""


class TestExtractEmailDomain:
    def test_corporate_domain(self):
        assert extract_email_domain("Jane.Doe@Acme.com") == "acme.com"

    def test_generic_provider_ignored(self):
        assert extract_email_domain("bob@gmail.com") is None
        assert extract_email_domain("bob@outlook.com") is None

    def test_malformed(self):
        assert extract_email_domain("not-an-email") is None
        assert extract_email_domain("bob@") is None
        assert extract_email_domain(None) is None


class TestDeriveDomain:
    def test_prefers_website(self):
        assert derive_domain("www.foo.com", "jane@acme.com") == "foo.com"

    def test_falls_back_to_email(self):
        assert derive_domain("", "jane@acme.com") == "acme.com"

    def test_generic_email_gives_nothing(self):
        assert derive_domain("", "jane@gmail.com") == ""


# =========================================================================
# normalize_address / normalize_string
# =========================================================================


class TestNormalizeAddress:
    def test_expands_abbreviations(self):
        assert normalize_address("12 George St") == "12 george street"
        assert normalize_address("5 Main Rd.") == "5 main road"

    def test_leaves_full_words(self):
        assert normalize_address("1 Park Avenue") == "1 park avenue"


class TestNormalizeString:
    def test_collapses_whitespace(self):
        assert normalize_string("  North   Sydney ") == "north sydney"


# =========================================================================
# Idempotence
# =========================================================================


@pytest.mark.parametrize(
    "name",
    ["Acme Pty Ltd", "Smith & Jones and Co Holdings", "Company", "Über Café GmbH", "A and B and C"],
)
def test_company_name_idempotent(name):
    once = normalize_company_name(name)
    assert normalize_company_name(once) == once


@pytest.mark.parametrize(
    ("phone", "country"),
    [
        ("+61 2 9999 0000", "australia"),
        ("612345678", "australia"),
        ("+44 20 7946 0958", "uk"),
        ("09 123 4567", "new zealand"),
        ("+1 415 555 1234", "usa"),
        ("12345", "australia"),
    ],
)
def test_phone_idempotent(phone, country):
    once = normalize_phone(phone, country)
    assert normalize_phone(once, country) == once


@pytest.mark.parametrize(
    "url",
    [
        "https://www.acme.com/x?y=1",
        "acme.com.au",
        "WWW.EXAMPLE.ORG/",
        "www.www.acme.com",
        "http://www.www.acme.com/x",
        "https://http://acme.com",
        "http:// www.acme.com",
    ],
)
def test_website_idempotent(url):
    once = normalize_website(url)
    assert normalize_website(once) == once


@pytest.mark.parametrize("address", ["12 George St", "5 Main Rd.", "Unit 4, 99 Pacific Hwy"])
def test_address_idempotent(address):
    once = normalize_address(address)
    assert normalize_address(once) == once


# =========================================================================
# normalize_account
# =========================================================================


class TestNormalizeAccount:
    def test_derives_all_keys(self):
        account = Account(
            name="Acme Pty Ltd",
            phone="+61 2 9999 0000",
            email="sales@acme.com.au",
            billing_street="1 George St",
            billing_country="Australia",
        )
        normalized = normalize_account(account)
        assert normalized.normalized_name == "acme"
        assert normalized.normalized_phone == "299990000"
        assert normalized.normalized_website == "acme.com.au"
        assert normalized.normalized_billing_street == "1 george street"

    def test_country_override(self):
        account = Account(phone="+44 20 7946 0958", billing_country="Australia")
        assert normalize_account(account, "united kingdom").normalized_phone == "2079460958"
