"""
Static mapping for human-friendly names.

Extend the tables when more companies, services or booking forms are watched.
"""

from typing import Optional


COMPANY_NAMES = {
    "780413": "Неваляшка",
}

SERVICE_NAMES = {
    "15728488": "Город с инструктором",
}

FORM_NAMES = {
    "n841217": "Город с инструктором",
}


class StaticNameResolver:
    """Name lookups backed by in-memory tables. A miss returns None."""

    def __init__(
        self,
        companies: Optional[dict] = None,
        services: Optional[dict] = None,
        forms: Optional[dict] = None,
    ):
        self.companies = COMPANY_NAMES if companies is None else companies
        self.services = SERVICE_NAMES if services is None else services
        self.forms = FORM_NAMES if forms is None else forms

    def location_name(self, location_id) -> Optional[str]:
        return self.companies.get(str(location_id))

    def service_name(self, service_id) -> Optional[str]:
        return self.services.get(str(service_id))

    def form_name(self, form_id: str) -> Optional[str]:
        return self.forms.get(form_id)
