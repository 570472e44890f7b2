"""Pydantic configuration models for all engine settings."""

from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field


class CommunityConfig(BaseModel):
    timezone: str = "Europe/Zurich"  # IANA tz used to assign readings to calendar months
    interval_minutes: int = Field(15, ge=1, le=60)
    default_distribution_policy: Literal["prorata", "equal", "priority"] = "prorata"
    default_priority_level: int = 5


class AllocationConfig(BaseModel):
    """How community surplus is matched against demand.

    ``month`` pools monthly totals per member; ``interval`` pools every
    metering interval separately and sums the results.
    """
    granularity: Literal["month", "interval"] = "month"


class BillingConfig(BaseModel):
    currency: Literal["CHF", "EUR"] = "CHF"
    payment_term_days: int = Field(30, ge=0)
    locale: Literal["fr", "de", "it", "en"] = "fr"
    country: str = "CH"


class PlatformBillingConfig(BaseModel):
    rate_per_kwh: Decimal = Decimal("0.005")
    minimum_amount: Decimal = Decimal("49.00")
    vat_rate: Decimal = Decimal("8.1")
    payment_term_days: int = Field(30, ge=0)
    number_prefix: str = "WATTLY"
    currency: Literal["CHF", "EUR"] = "CHF"
    # Creditor printed on platform invoices
    payee_name: str = "Wattly"
    payee_address: str = ""
    payee_postal_code: str = ""
    payee_city: str = ""
    payee_country: str = "CH"
    iban: str = ""


class DeliveryConfig(BaseModel):
    renderer_url: str = ""  # Document rendering collaborator endpoint
    email_url: str = ""  # Email collaborator endpoint
    api_token: str = ""
    timeout_seconds: float = Field(10.0, gt=0)


class APIConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080
    actor_header: str = "X-Actor-Id"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "json"
    file: str = ""


class DBConfig(BaseModel):
    path: str = "wattly.db"


class AppConfig(BaseModel):
    """Root configuration model containing all engine settings."""

    community: CommunityConfig = CommunityConfig()
    allocation: AllocationConfig = AllocationConfig()
    billing: BillingConfig = BillingConfig()
    platform_billing: PlatformBillingConfig = PlatformBillingConfig()
    delivery: DeliveryConfig = DeliveryConfig()
    api: APIConfig = APIConfig()
    logging: LoggingConfig = LoggingConfig()
    db: DBConfig = DBConfig()
