"""Region codes — continent and country whitelists plus IATA code checks."""

CONTINENT_CODES: frozenset[str] = frozenset({
    "AF",  # Africa
    "AN",  # Antarctica
    "AS",  # Asia
    "EU",  # Europe
    "NA",  # North America
    "OC",  # Oceania
    "SA",  # South America
})

COUNTRY_CODES: frozenset[str] = frozenset({
    # Europe
    "AD", "AL", "AT", "BA", "BE", "BG", "BY", "CH", "CY", "CZ", "DE", "DK",
    "EE", "ES", "FI", "FR", "GB", "GR", "HR", "HU", "IE", "IS", "IT", "LI",
    "LT", "LU", "LV", "MC", "MD", "ME", "MK", "MT", "NL", "NO", "PL", "PT",
    "RO", "RS", "RU", "SE", "SI", "SK", "SM", "UA", "UK", "VA",
    # North America
    "CA", "US", "MX", "BZ", "CR", "CU", "DO", "GT", "HN", "HT", "JM", "NI", "PA", "SV",
    # South America
    "AR", "BO", "BR", "CL", "CO", "EC", "GY", "PE", "PY", "SR", "UY", "VE",
    # Asia
    "AE", "AF", "AM", "AZ", "BD", "BH", "BN", "BT", "CN", "GE", "ID", "IL", "IN",
    "IQ", "IR", "JO", "JP", "KG", "KH", "KP", "KR", "KW", "KZ", "LA", "LB", "LK",
    "MM", "MN", "MY", "NP", "OM", "PH", "PK", "PS", "QA", "SA", "SG", "SY", "TH",
    "TJ", "TM", "TR", "TW", "UZ", "VN", "YE",
    # Africa
    "AO", "BF", "BI", "BJ", "BW", "CD", "CF", "CG", "CI", "CM", "CV", "DJ", "DZ",
    "EG", "EH", "ER", "ET", "GA", "GH", "GM", "GN", "GQ", "GW", "KE", "KM", "LR",
    "LS", "LY", "MA", "MG", "ML", "MR", "MU", "MW", "MZ", "NA", "NE", "NG", "RW",
    "SC", "SD", "SL", "SN", "SO", "SS", "SZ", "TD", "TG", "TN", "TZ", "UG", "ZA", "ZM", "ZW",
    # Oceania
    "AU", "FJ", "FM", "KI", "MH", "NR", "NZ", "PG", "PW", "SB", "TO", "TV", "VU", "WS",
})

IATA_CODE_LENGTH = 3


def is_valid_continent(code: str | None) -> bool:
    if not code or not code.strip():
        return False
    return code.upper() in CONTINENT_CODES


def is_valid_country(code: str | None) -> bool:
    if not code or not code.strip():
        return False
    return code.upper() in COUNTRY_CODES


def is_valid_city_code(code: str | None) -> bool:
    """Exactly three uppercase ASCII letters (IATA airport or city code)."""
    if not code:
        return False
    return len(code) == IATA_CODE_LENGTH and code.isascii() and code.isalpha() and code.isupper()


def invalid_codes(codes: list[str], kind: str) -> list[str]:
    """Return the codes in ``codes`` that are not valid for ``kind`` (continent, country, city)."""
    checks = {
        "continent": is_valid_continent,
        "country": is_valid_country,
        "city": is_valid_city_code,
    }
    check = checks[kind]
    return [code for code in codes if not check(code)]
