"""Configuration for the P4Runtime session controller."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service Settings
    service_name: str = "p4-controller"
    version: str = "0.1.0"
    log_level: str = "INFO"

    # Switch Settings
    base_address: str = "127.0.0.1"
    base_port: int = Field(
        default=50050,
        description="gRPC port of device 0; device N listens on base_port + N",
    )
    device_count: int = 1
    port_count: int = 3
    max_retries: int = Field(
        default=0,
        description="Reconnection attempts allowed after a runtime fault",
    )

    # Pipeline Settings
    bin_path: str = ""
    p4info_path: str = ""

    # TLS Settings
    tls_cert_path: str = "/tmp/cert.pem"
    tls_client_cert_path: str = ""
    tls_client_key_path: str = ""

    # Arbitration Settings
    election_id_high: int = 0
    election_id_low: int = 1
    arbitration_timeout_seconds: float = 10.0

    # Timing Settings
    settle_delay_seconds: float = 0.25
    grace_period_seconds: float = 0.25
    reconnect_delay_seconds: float = 5.0

    # Digest Settings
    digest_name: str = "digest_t"
    digest_max_timeout_ns: int = 0
    digest_max_list_size: int = 1
    digest_ack_timeout_ns: int = 1000 * 1_000_000_000

    # Counter Sampling Settings
    counter_sampling_enabled: bool = False
    counter_check_interval_seconds: float = 5.0
    packet_counter_name: str = "MyIngress.port_packets_in"
    packet_count_warn: int = 20

    # Forwarding Table Settings
    lpm_table_name: str = "MyIngress.ipv4_lpm"
    forward_action_name: str = "MyIngress.ipv4_forward"
    routes_file: str = "routes.json"
    alt_routes_file: str = "routes_long.json"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
