# shipsync/utils/country_codes.py
# Maps the country values Kurasi sends (ISO-2, ISO-3 or English names) to ISO-2.

from typing import Optional
import phonenumbers

# ISO-3 and common names for the destinations seen on Kurasi shipments.
# Anything already ISO-2 is validated against the phonenumbers region list.
_ALIASES = {
    "USA": "US", "UNITED STATES": "US", "UNITED STATES OF AMERICA": "US",
    "GBR": "GB", "UK": "GB", "UNITED KINGDOM": "GB", "GREAT BRITAIN": "GB", "ENGLAND": "GB",
    "AUS": "AU", "AUSTRALIA": "AU",
    "CAN": "CA", "CANADA": "CA",
    "DEU": "DE", "GERMANY": "DE",
    "FRA": "FR", "FRANCE": "FR",
    "ITA": "IT", "ITALY": "IT",
    "ESP": "ES", "SPAIN": "ES",
    "NLD": "NL", "NETHERLANDS": "NL", "THE NETHERLANDS": "NL",
    "BEL": "BE", "BELGIUM": "BE",
    "CHE": "CH", "SWITZERLAND": "CH",
    "AUT": "AT", "AUSTRIA": "AT",
    "SWE": "SE", "SWEDEN": "SE",
    "NOR": "NO", "NORWAY": "NO",
    "DNK": "DK", "DENMARK": "DK",
    "FIN": "FI", "FINLAND": "FI",
    "IRL": "IE", "IRELAND": "IE",
    "PRT": "PT", "PORTUGAL": "PT",
    "POL": "PL", "POLAND": "PL",
    "IDN": "ID", "INDONESIA": "ID",
    "MYS": "MY", "MALAYSIA": "MY",
    "SGP": "SG", "SINGAPORE": "SG",
    "THA": "TH", "THAILAND": "TH",
    "PHL": "PH", "PHILIPPINES": "PH",
    "VNM": "VN", "VIETNAM": "VN", "VIET NAM": "VN",
    "JPN": "JP", "JAPAN": "JP",
    "KOR": "KR", "SOUTH KOREA": "KR", "KOREA": "KR", "REPUBLIC OF KOREA": "KR",
    "CHN": "CN", "CHINA": "CN",
    "HKG": "HK", "HONG KONG": "HK",
    "TWN": "TW", "TAIWAN": "TW",
    "IND": "IN", "INDIA": "IN",
    "NZL": "NZ", "NEW ZEALAND": "NZ",
    "MEX": "MX", "MEXICO": "MX",
    "BRA": "BR", "BRAZIL": "BR",
    "ARG": "AR", "ARGENTINA": "AR",
    "CHL": "CL", "CHILE": "CL",
    "ARE": "AE", "UNITED ARAB EMIRATES": "AE", "UAE": "AE",
    "SAU": "SA", "SAUDI ARABIA": "SA",
    "ISR": "IL", "ISRAEL": "IL",
    "TUR": "TR", "TURKEY": "TR", "TURKIYE": "TR",
    "ZAF": "ZA", "SOUTH AFRICA": "ZA",
    "RUS": "RU", "RUSSIA": "RU", "RUSSIAN FEDERATION": "RU",
    "GRC": "GR", "GREECE": "GR",
    "CZE": "CZ", "CZECH REPUBLIC": "CZ", "CZECHIA": "CZ",
    "HUN": "HU", "HUNGARY": "HU",
    "ROU": "RO", "ROMANIA": "RO",
    "PRI": "PR", "PUERTO RICO": "PR",
}


def normalize_country(value) -> Optional[str]:
    """Returns the upper-case ISO-2 code for `value`, or None when it is not a known country."""
    if value is None:
        return None
    text = " ".join(str(value).strip().upper().split())
    if not text or text == "NULL":
        return None
    if len(text) == 2:
        return text if text in phonenumbers.SUPPORTED_REGIONS else None
    return _ALIASES.get(text)
