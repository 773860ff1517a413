"""
Pydantic models for VidGroBackend routes and the runtime config document.
"""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ClientModel(BaseModel):
    """Immutable model serialized with camelCase keys for the mobile client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class SupabaseSection(_ClientModel):
    url: str
    anon_key: str


class AdmobSection(_ClientModel):
    app_id: str
    banner_id: str
    interstitial_id: str
    rewarded_id: str


class FeatureFlags(_ClientModel):
    coins_enabled: bool = True
    ads_enabled: bool = True
    vip_enabled: bool = True
    referrals_enabled: bool = True
    analytics_enabled: bool = True


class AppSection(_ClientModel):
    min_version: str = "1.0.0"
    force_update: bool = False
    maintenance_mode: bool = False
    api_version: str = "v1"


class SecuritySection(_ClientModel):
    allow_emulators: bool = False
    allow_rooted: bool = False
    require_signature_validation: bool = False
    ad_block_detection: bool = True


class ConfigMetadata(_ClientModel):
    config_version: str = "1.0.0"
    last_updated: str
    ttl: int = Field(3600, description="Client-side cache lifetime in seconds")


class ConfigDocument(_ClientModel):
    supabase: SupabaseSection
    admob: AdmobSection
    features: FeatureFlags
    app: AppSection
    security: SecuritySection
    metadata: ConfigMetadata

    def to_client(self) -> dict:
        return self.model_dump(by_alias=True)


class EnvSyncRequest(BaseModel):
    """Body of the admin env-sync endpoint; each Supabase value has two accepted names."""

    model_config = ConfigDict(extra="ignore")

    mobile_supabase_url: Optional[str] = Field(None, validation_alias=AliasChoices("MOBILE_SUPABASE_URL", "mobileSupabaseUrl"))
    supabase_url: Optional[str] = Field(None, validation_alias=AliasChoices("SUPABASE_URL", "supabaseUrl"))
    mobile_supabase_anon_key: Optional[str] = Field(None, validation_alias=AliasChoices("MOBILE_SUPABASE_ANON_KEY", "mobileSupabaseAnonKey"))
    supabase_anon_key: Optional[str] = Field(None, validation_alias=AliasChoices("SUPABASE_ANON_KEY", "supabaseAnonKey"))
    admob_app_id: Optional[str] = Field(None, validation_alias=AliasChoices("ADMOB_APP_ID"))
    admob_banner_id: Optional[str] = Field(None, validation_alias=AliasChoices("ADMOB_BANNER_ID"))
    admob_interstitial_id: Optional[str] = Field(None, validation_alias=AliasChoices("ADMOB_INTERSTITIAL_ID"))
    admob_rewarded_id: Optional[str] = Field(None, validation_alias=AliasChoices("ADMOB_REWARDED_ID"))

    def resolved_url(self) -> Optional[str]:
        return self.mobile_supabase_url or self.supabase_url

    def resolved_anon_key(self) -> Optional[str]:
        return self.mobile_supabase_anon_key or self.supabase_anon_key

    def admob_overrides(self) -> dict:
        return {
            "ADMOB_APP_ID": self.admob_app_id,
            "ADMOB_BANNER_ID": self.admob_banner_id,
            "ADMOB_INTERSTITIAL_ID": self.admob_interstitial_id,
            "ADMOB_REWARDED_ID": self.admob_rewarded_id,
        }


class BackupCreateRequest(BaseModel):
    backup_type: str = Field("full", validation_alias=AliasChoices("backupType", "backup_type"))
    custom_name: Optional[str] = Field(None, validation_alias=AliasChoices("customName", "custom_name"))
    max_rows_per_table: Optional[int] = Field(
        None,
        ge=0,
        validation_alias=AliasChoices("maxRowsPerTable", "max_rows_per_table"),
        description="Per-table INSERT cap for this backup (defaults to BACKUP_MAX_ROWS_PER_TABLE)",
    )


class BackupDeleteRequest(BaseModel):
    path: Optional[str] = None
    bucket: Optional[str] = None
