"""Paramètres du site: modèle, fusion sur les défauts, observation en continu."""
from .models import SiteSettings, AdPixels, merge_site_settings
from .service import SiteSettingsWatcher

__all__ = ["SiteSettings", "AdPixels", "merge_site_settings", "SiteSettingsWatcher"]
