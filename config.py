"""
Central configuration for the purchase-order drafting service.

All endpoints, credentials, timeouts, and templates are defined here.
Override via environment variables or by passing a Config instance directly.

Settings priority (highest wins):
  1. config/po_settings.json  (admin-editable, persisted)
  2. Environment variables
  3. Hardcoded defaults in this file
"""
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Project root (directory containing this file)
PROJECT_ROOT = Path(__file__).parent

WEBHOOK_PATH = "/handle-frontend"

# Branch used when the supplier record carries none
DEFAULT_BRANCH_ID = 15132

DEFAULT_DESCRIPTION_TEMPLATE = (
    "Draft from templates: {{ lines | length }} products"
    "{% if breakdown %}, {{ breakdown }}{% endif %}"
)


@dataclass
class Config:
    # --- Hosted data API (PostgREST-compatible) ---
    data_api_url: Optional[str] = field(
        default_factory=lambda: os.getenv("SUPABASE_URL")
    )
    data_api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("SUPABASE_ANON_KEY")
    )

    # --- Workflow webhook (n8n or any JSON endpoint) ---
    # The full URL is <N8N_WEBHOOK_URL>/handle-frontend.
    webhook_base_url: Optional[str] = field(
        default_factory=lambda: os.getenv("N8N_WEBHOOK_URL")
    )
    webhook_basic_auth: Optional[str] = field(
        default_factory=lambda: os.getenv("N8N_WEBHOOK_BASIC_AUTH")
    )
    # "user:pass", base64-encoded when the request is built
    webhook_header_key: Optional[str] = field(
        default_factory=lambda: os.getenv("N8N_WEBHOOK_HEADER_KEY")
    )
    webhook_header_value: Optional[str] = field(
        default_factory=lambda: os.getenv("N8N_WEBHOOK_HEADER_VALUE")
    )

    # --- Purchase order defaults ---
    default_branch_id: int = field(
        default_factory=lambda: int(os.getenv("DEFAULT_BRANCH_ID", str(DEFAULT_BRANCH_ID)))
    )
    description_template: str = field(
        default_factory=lambda: os.getenv("PO_DESCRIPTION_TEMPLATE", DEFAULT_DESCRIPTION_TEMPLATE)
    )
    master_unit_label: str = "kg"

    # --- Timeouts (seconds) ---
    template_timeout_seconds: float = field(
        default_factory=lambda: float(os.getenv("TEMPLATE_TIMEOUT", "10"))
    )
    request_timeout_seconds: float = field(
        default_factory=lambda: float(os.getenv("REQUEST_TIMEOUT", "30"))
    )

    # --- Supplier listing ---
    supplier_fetch_attempts:      int   = 3
    supplier_retry_delay_seconds: float = 0.5   # multiplied by the attempt number
    supplier_list_limit:          int   = 100

    # --- Auth session ---
    # Operator credentials used by the CLI to sign in before submitting.
    auth_email: Optional[str] = field(
        default_factory=lambda: os.getenv("SUPABASE_USER_EMAIL")
    )
    auth_password: Optional[str] = field(
        default_factory=lambda: os.getenv("SUPABASE_USER_PASSWORD")
    )
    session_refresh_threshold_seconds: int = 60

    # --- Dashboard drafts ---
    draft_idle_ttl_seconds: float = 1800   # abandoned drafts are evicted after this
    max_drafts:             int   = 200

    def __post_init__(self) -> None:
        """Overlay runtime-tunable settings from po_settings.json if present."""
        config_dir = Path(os.getenv("CONFIG_DIR", str(PROJECT_ROOT / "config")))
        settings_file = config_dir / "po_settings.json"
        if not settings_file.exists():
            return
        _type_map: dict[str, type] = {
            "data_api_url":                      str,
            "webhook_base_url":                  str,
            "webhook_header_key":                str,
            "default_branch_id":                 int,
            "description_template":              str,
            "master_unit_label":                 str,
            "template_timeout_seconds":          float,
            "request_timeout_seconds":           float,
            "supplier_fetch_attempts":           int,
            "supplier_retry_delay_seconds":      float,
            "supplier_list_limit":               int,
            "session_refresh_threshold_seconds": int,
            "draft_idle_ttl_seconds":            float,
            "max_drafts":                        int,
        }
        try:
            with open(settings_file, encoding="utf-8") as f:
                overrides = {k: v for k, v in json.load(f).items() if not k.startswith("_")}
            for key, val in overrides.items():
                if key in _type_map and hasattr(self, key):
                    setattr(self, key, _type_map[key](val))
        except Exception as exc:
            logger.warning("Failed to load po_settings.json: %s", exc)

    @property
    def webhook_url(self) -> Optional[str]:
        if not self.webhook_base_url:
            return None
        return self.webhook_base_url.rstrip("/") + WEBHOOK_PATH
