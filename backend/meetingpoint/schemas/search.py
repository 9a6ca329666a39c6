"""Search schemas — single- and multi-origin requests, price quotes, common destinations."""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, model_validator

from meetingpoint.data.regions import invalid_codes, is_valid_city_code


def _normalize_code(value: str) -> str:
    return value.strip().upper()


def _check_city_code(value: str) -> str:
    code = _normalize_code(value)
    if not is_valid_city_code(code):
        raise ValueError(f"'{value}' is not a 3-letter IATA code")
    return code


class DestinationFilter(BaseModel):
    """Optional narrowing of destinations: at most one of continent, country or an explicit list."""

    continent: str | None = None
    country: str | None = None
    destinations: list[str] | None = None

    model_config = {"frozen": True}

    @field_validator("continent")
    @classmethod
    def _continent_code(cls, value: str | None) -> str | None:
        if value is None:
            return None
        code = _normalize_code(value)
        if invalid_codes([code], "continent"):
            raise ValueError(f"Unknown continent code '{value}'")
        return code

    @field_validator("country")
    @classmethod
    def _country_code(cls, value: str | None) -> str | None:
        if value is None:
            return None
        code = _normalize_code(value)
        if invalid_codes([code], "country"):
            raise ValueError(f"Unknown country code '{value}'")
        return code

    @field_validator("destinations")
    @classmethod
    def _destination_codes(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        if not value:
            raise ValueError("Destination list filter must not be empty")
        return list(dict.fromkeys(_check_city_code(code) for code in value))

    @model_validator(mode="after")
    def _single_variant(self) -> "DestinationFilter":
        chosen = [
            name for name in ("continent", "country", "destinations")
            if getattr(self, name) is not None
        ]
        if len(chosen) > 1:
            raise ValueError(
                f"Only one destination filter may be set, got: {', '.join(chosen)}"
            )
        return self

    @property
    def kind(self) -> str:
        if self.continent is not None:
            return "continent"
        if self.country is not None:
            return "country"
        if self.destinations is not None:
            return "destinations"
        return "none"


class _SearchFields(BaseModel):
    departure_date: date
    return_date: date | None = None
    currency: str = "EUR"
    destination_filter: DestinationFilter = Field(default_factory=DestinationFilter)

    model_config = {"frozen": True}

    @field_validator("currency")
    @classmethod
    def _currency_code(cls, value: str) -> str:
        code = _normalize_code(value)
        if len(code) != 3 or not code.isalpha():
            raise ValueError(f"'{value}' is not a 3-letter currency code")
        return code

    @model_validator(mode="after")
    def _return_after_departure(self):
        if self.return_date is not None and self.return_date < self.departure_date:
            raise ValueError("return_date must not be before departure_date")
        return self


class SearchRequest(_SearchFields):
    """Price lookup for one origin."""

    origin: str

    @field_validator("origin")
    @classmethod
    def _origin_code(cls, value: str) -> str:
        return _check_city_code(value)


class MultiOriginSearchRequest(_SearchFields):
    """The same lookup fanned out across every traveler's origin."""

    origins: list[str]

    @field_validator("origins")
    @classmethod
    def _origin_codes(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("At least one origin must be provided")
        codes = [_check_city_code(code) for code in value]
        # Keep first-seen order, drop repeats
        return list(dict.fromkeys(codes))

    def for_origin(self, origin: str) -> SearchRequest:
        return SearchRequest(
            origin=origin,
            departure_date=self.departure_date,
            return_date=self.return_date,
            currency=self.currency,
            destination_filter=self.destination_filter,
        )


class PriceQuote(BaseModel):
    origin: str
    destination_city: str
    destination_country: str | None = None
    price: Decimal = Field(ge=0)
    currency: str

    model_config = {"frozen": True}


OriginPriceMap = dict[str, list[PriceQuote]]


class CommonDestination(BaseModel):
    """A destination reachable from every origin, with its group cost."""

    destination_city: str
    destination_country: str | None = None
    total_price: Decimal
    median_price: Decimal
    per_origin_price: dict[str, Decimal]
    currency: str | None = None

    model_config = {"frozen": True}


class CheapestDestinationResponse(BaseModel):
    found: bool
    destination: CommonDestination | None = None
    origins_searched: list[str]
    origins_failed: list[str]
