from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Provider selection: kiwi, amadeus, mock, or auto (first configured one, else mock)
    flight_provider: str = "auto"
    default_currency: str = "EUR"

    # Kiwi / Tequila
    kiwi_api_key: str = ""
    kiwi_base_url: str = "https://api.tequila.kiwi.com"

    # Amadeus
    amadeus_client_id: str = ""
    amadeus_client_secret: str = ""
    amadeus_base_url: str = "https://test.api.amadeus.com"

    # Resilience
    retry_count: int = 3
    retry_base_delay_seconds: float = 2.0
    per_attempt_timeout_seconds: float = 30.0
    circuit_breaker_threshold: int = 5
    circuit_breaker_break_seconds: float = 30.0

    # Concurrency gate
    max_concurrent_requests: int = 10
    max_queued_requests: int = 20

    # Response cache
    cache_ttl_minutes: int = 10
    cache_enabled: bool = True

    # CORS
    cors_origins: str = "http://localhost:5173"

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_minutes * 60.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
