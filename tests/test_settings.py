# tests/test_settings.py
from market_chat.core.settings import Settings


def test_list_settings_parse_comma_separated_values() -> None:
    configured = Settings(
        ALLOWED_NETWORKS=" bnb-testnet , opbnb-mainnet,, ",
        ADMIN_ADDRESSES="0xAbC0000000000000000000000000000000000001, ",
    )

    assert configured.allowed_networks == ["bnb-testnet", "opbnb-mainnet"]
    assert configured.admin_addresses == frozenset({"0xabc0000000000000000000000000000000000001"})


def test_default_networks() -> None:
    assert Settings().allowed_networks == ["bnb-testnet", "bnb-mainnet"]
