import pytest

from slot_notifier.api import BookingClientError, YClientsClient, client_from_config, create_client
from slot_notifier.config import Config


class TestClientFactory:
    def test_create_yclients_client(self):
        client = create_client("yclients", {"login": "l", "password": "p", "partner_token": "t"})

        assert isinstance(client, YClientsClient)
        assert client.platform_name == "yclients"

    def test_missing_credential(self):
        with pytest.raises(BookingClientError, match="password"):
            create_client("yclients", {"login": "l", "partner_token": "t"})

    def test_unknown_platform(self):
        with pytest.raises(BookingClientError, match="Unknown platform"):
            create_client("resy", {})

    def test_from_config(self):
        config = Config(
            yclients_login="l",
            yclients_password="p",
            yclients_partner_token="t",
            yclients_company_id="780413",
            yclients_form_id="n841217",
        )

        status = client_from_config(config).status()

        assert status.auth_configured is True
        assert status.company_id == "780413"
        assert status.form_id == "n841217"
