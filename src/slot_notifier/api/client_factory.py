"""
Factory for creating platform-specific booking clients from configuration.
"""

import logging
from typing import Optional

from ..config import Config
from .base import BookingClient, BookingClientError


def create_client(platform: str, credentials: dict, logger: Optional[logging.Logger] = None) -> BookingClient:
    """
    Create a booking client for the given platform.

    Args:
        platform: Platform name ('yclients')
        credentials: Platform-specific credential dict
        logger: Logger handed to the client

    Returns:
        A configured BookingClient instance

    Raises:
        BookingClientError: If the platform is unknown or credentials are incomplete
    """
    if platform == "yclients":
        from .yclients_client import YClientsClient
        try:
            return YClientsClient(
                login=credentials["login"],
                password=credentials["password"],
                partner_token=credentials["partner_token"],
                company_id=credentials.get("company_id", ""),
                form_id=credentials.get("form_id", ""),
                logger=logger,
            )
        except KeyError as e:
            raise BookingClientError(f"Missing credential {e}", platform=platform)
    else:
        raise BookingClientError(f"Unknown platform: {platform}", platform=platform)


def client_from_config(config: Config, logger: Optional[logging.Logger] = None) -> BookingClient:
    """Build the YCLIENTS client from a loaded Config."""
    return create_client(
        "yclients",
        {
            "login": config.yclients_login,
            "password": config.yclients_password,
            "partner_token": config.yclients_partner_token,
            "company_id": config.yclients_company_id,
            "form_id": config.yclients_form_id,
        },
        logger=logger,
    )
