"""
Paramètres du site (document site_settings/main) et valeurs par défaut.
Le document stocké est fusionné sur les défauts: les nouveaux champs restent toujours présents.
"""
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

# Icône « balance dorée » en data URI
DEFAULT_FAVICON = (
    "data:image/svg+xml;base64,PHN2ZyB4bWxucz0iaHR0cDovL3d3dy53My5vcmcvMjAwMC9zdmciIHdpZHRoPSIyNCIgaGVpZ2h0"
    "PSIyNCIgZmlsbD0ibm9uZSIgc3Ryb2tlPSIjY2RhNTY0IiBzdHJva2Utd2lkdGg9IjIiLz4="
)


class AdPixels(BaseModel):
    google_tag_id: str = ""
    facebook_pixel_id: str = ""
    snapchat_pixel_id: str = ""
    tiktok_pixel_id: str = ""


class SiteSettings(BaseModel):
    site_name: Dict[str, str] = Field(default_factory=lambda: {"en": "The Smart Assistant", "ar": "المساعد الذكي"})
    site_subtitle: Dict[str, str] = Field(default_factory=lambda: {"en": "For Law and Legal Consulting", "ar": "للمحاماة والاستشارات القانونية"})
    meta_description: Dict[str, str] = Field(default_factory=lambda: {
        "en": "An AI-powered platform providing specialized services for lawyers and legal consultants.",
        "ar": "منصة مدعومة بالذكاء الاصطناعي تقدم خدمات متخصصة للمحامين والمستشارين القانونيين.",
    })
    seo_keywords: Dict[str, str] = Field(default_factory=lambda: {"en": "law, legal, ai, lawyer, assistant", "ar": "محاماه, قانون, ذكاء اصطناعي"})
    logo_url: str = ""
    favicon_url: str = DEFAULT_FAVICON
    is_maintenance_mode: bool = False
    ad_pixels: AdPixels = Field(default_factory=AdPixels)


_BUNDLE_FIELDS = ("site_name", "site_subtitle", "meta_description", "seo_keywords")


def merge_site_settings(data: Optional[Dict[str, Any]]) -> SiteSettings:
    """
    Fusion profonde du document stocké sur les défauts.
    - Les textes par langue et ad_pixels sont fusionnés clé par clé.
    - favicon_url vide -> favicon par défaut.
    - Champs inconnus ignorés.
    """
    defaults = SiteSettings()
    if not data:
        return defaults
    merged = defaults.model_dump()
    for key, value in data.items():
        if key not in merged or value is None:
            continue
        if key in _BUNDLE_FIELDS and isinstance(value, dict):
            merged[key] = {**merged[key], **value}
        elif key == "ad_pixels" and isinstance(value, dict):
            merged[key] = {**merged[key], **{k: v for k, v in value.items() if v is not None}}
        else:
            merged[key] = value
    merged["favicon_url"] = data.get("favicon_url") or defaults.favicon_url
    return SiteSettings.model_validate(merged)
