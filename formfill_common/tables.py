# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Lookup tables shared by the classifier and the auto-fill engine.

The tables are immutable and built once; services receive a LookupTables
instance instead of reading module globals, so tests can pass their own.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

DEFAULT_SYNONYMS: Dict[str, Tuple[str, ...]] = {
    # Name variations
    "name": ("full_name", "patient_name", "client_name", "student_name", "applicant_name", "member_name"),
    "first_name": ("fname", "given_name", "first", "firstname"),
    "last_name": ("lname", "surname", "family_name", "last", "lastname"),
    # Contact information
    "email": ("email_address", "e_mail", "electronic_mail", "contact_email"),
    "phone": ("phone_number", "telephone", "mobile", "cell", "contact_number", "primary_phone"),
    # Address variations
    "address": ("street_address", "home_address", "mailing_address", "residence"),
    "street": ("street_address", "address_line_1", "addr1"),
    "city": ("city_name", "town"),
    "state": ("state_province", "province", "region"),
    "zip": ("zip_code", "postal_code", "zipcode"),
    # Date variations
    "date_of_birth": ("dob", "birth_date", "birthdate", "born"),
    "today": ("current_date", "todays_date", "date_signed", "signature_date"),
    # Healthcare specific
    "patient": ("client", "member", "individual"),
    "guardian": ("parent", "legal_guardian", "responsible_party"),
    "emergency_contact": ("emergency", "contact_person", "in_case_of_emergency"),
    # Financial
    "ssn": ("social_security_number", "social_security", "tax_id"),
    "insurance": ("insurance_number", "policy_number", "member_id"),
}

# Date resolvers that always yield the current date
DEFAULT_TODAY_KEYS: Tuple[str, ...] = ("today",)

# Date resolvers that scan saved-date labels for a keyword, tried in order
DEFAULT_DATE_LABEL_KEYWORDS: Dict[str, str] = {
    "date_of_birth": "birth",
    "immunization_date": "immunization",
    "appointment_date": "appointment",
}

DEFAULT_PROFILE_VOCABULARY: Tuple[str, ...] = (
    "name", "first_name", "last_name", "full_name",
    "email", "phone", "address", "date_of_birth",
    "ssn", "social_security", "emergency_contact",
)

DEFAULT_RELATIONSHIP_INDICATORS: Tuple[str, ...] = (
    "child", "spouse", "dependent", "family", "guardian", "parent",
)

# Normalized field key -> top-level profile attribute for manual write-back
DEFAULT_PROFILE_ATTRIBUTES: Dict[str, str] = {
    "name": "full_name",
    "full_name": "full_name",
    "email": "email",
    "phone": "phone",
    "date_of_birth": "date_of_birth",
    "dob": "date_of_birth",
}

DEFAULT_SUGGESTIONS: Dict[str, Tuple[str, ...]] = {
    "date": ("MM/DD/YYYY", "Today", "Date of Birth"),
    "phone": ("(555) 123-4567", "Primary Phone", "Emergency Contact"),
    "email": ("user@example.com", "Primary Email", "Work Email"),
    "signature": ("Digital Signature", "Print Name", "Date Signed"),
    "address": ("Street Address", "City, State ZIP", "Mailing Address"),
}

DEFAULT_NAME_SUGGESTIONS: Tuple[str, ...] = ("Full Name", "First Name", "Last Name")


@dataclass(frozen=True)
class HouseholdWeights:
    """Scoring weights for household-member matching."""

    relationship: float = 0.8
    minor: float = 0.6
    spouse: float = 0.9
    threshold: float = 0.5
    minor_age: int = 18

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "HouseholdWeights":
        data = data or {}
        defaults = cls()
        return cls(
            relationship=float(data.get("relationship", defaults.relationship)),
            minor=float(data.get("minor", defaults.minor)),
            spouse=float(data.get("spouse", defaults.spouse)),
            threshold=float(data.get("threshold", defaults.threshold)),
            minor_age=int(data.get("minor_age", defaults.minor_age)),
        )


def _freeze(table: Mapping[str, Any]) -> Mapping[str, Tuple[str, ...]]:
    return MappingProxyType({k: tuple(v) for k, v in table.items()})


@dataclass(frozen=True)
class LookupTables:
    synonyms: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: _freeze(DEFAULT_SYNONYMS))
    today_keys: Tuple[str, ...] = DEFAULT_TODAY_KEYS
    date_label_keywords: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_DATE_LABEL_KEYWORDS))
    )
    profile_vocabulary: Tuple[str, ...] = DEFAULT_PROFILE_VOCABULARY
    relationship_indicators: Tuple[str, ...] = DEFAULT_RELATIONSHIP_INDICATORS
    profile_attributes: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType(dict(DEFAULT_PROFILE_ATTRIBUTES))
    )
    suggestions: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: _freeze(DEFAULT_SUGGESTIONS))
    name_suggestions: Tuple[str, ...] = DEFAULT_NAME_SUGGESTIONS
    household_weights: HouseholdWeights = field(default_factory=HouseholdWeights)
    fuzzy_threshold: float = 0.7

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]]) -> "LookupTables":
        """
        Build tables from the ``autofill`` configuration section.

        Keys that are absent keep their defaults.
        """
        config = config or {}
        defaults = cls()
        return cls(
            synonyms=_freeze(config["synonyms"]) if "synonyms" in config else defaults.synonyms,
            today_keys=tuple(config.get("today_keys", defaults.today_keys)),
            date_label_keywords=MappingProxyType(
                dict(config.get("date_label_keywords", defaults.date_label_keywords))
            ),
            profile_vocabulary=tuple(config.get("profile_vocabulary", defaults.profile_vocabulary)),
            relationship_indicators=tuple(
                config.get("relationship_indicators", defaults.relationship_indicators)
            ),
            profile_attributes=MappingProxyType(
                dict(config.get("profile_attributes", defaults.profile_attributes))
            ),
            suggestions=_freeze(config["suggestions"]) if "suggestions" in config else defaults.suggestions,
            name_suggestions=tuple(config.get("name_suggestions", defaults.name_suggestions)),
            household_weights=HouseholdWeights.from_dict(config.get("household_weights")),
            fuzzy_threshold=float(config.get("fuzzy_threshold", defaults.fuzzy_threshold)),
        )

    def canonical_keys_for(self, key: str):
        """Yield canonical keys whose synonym list contains key, in table order."""
        for canonical, synonyms in self.synonyms.items():
            if key in synonyms:
                yield canonical


DEFAULT_TABLES = LookupTables()
