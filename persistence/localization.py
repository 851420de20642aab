"""
Error message localization.

Keys are stable identifiers (e.g. ``Repository.Delete.MissingEntity``); catalogs map
them to ``str.format`` templates per culture.
"""

from typing import Any, Dict, Optional

from persistence.config import settings

DEFAULT_CATALOG: Dict[str, str] = {
    "Repository.Delete.MissingEntity": "{0} could not be deleted because it does not exist.",
    "Repository.Delete.SoftDeletionNotIDeleteable": "Entity cannot be soft deleted because it does not track deletion.",
    "Repository.Restore.MissingEntity": "{0} could not be restored because it does not exist.",
}


class Localizer:
    """Resolves error keys to user-facing text for the active culture."""

    def __init__(self, culture: Optional[str] = None, catalogs: Optional[Dict[str, Dict[str, str]]] = None):
        self.culture = culture or settings.DEFAULT_CULTURE
        self.catalogs: Dict[str, Dict[str, str]] = {"en": dict(DEFAULT_CATALOG)}
        for name, catalog in (catalogs or {}).items():
            self.register(name, catalog)

    def register(self, culture: str, catalog: Dict[str, str]) -> None:
        """Add or extend the catalog for a culture."""
        self.catalogs.setdefault(culture, {}).update(catalog)

    def get(self, key: str, *args: Any, culture: Optional[str] = None) -> str:
        # Fall back to the English catalog, then to the key itself.
        culture = culture or self.culture
        template = self.catalogs.get(culture, {}).get(key) or self.catalogs["en"].get(key)
        if template is None:
            return key
        return template.format(*args) if args else template

    def __call__(self, key: str, *args: Any) -> str:
        return self.get(key, *args)
