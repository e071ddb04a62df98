"""Command line interface for testing configuration loading"""
from . import get_settings
from pathlib import Path

def main():
    """Display loaded configuration"""
    settings = get_settings()

    print("\nSettings Configuration:")
    print("-" * 50)
    for key, value in settings.items():
        if key in ('fees', 'ledgers'):
            continue
        if key == 'jwt_secret' and value:
            value = '********'
        print(f"{key}: {value}")

    for section in ('fees', 'ledgers'):
        print(f"\n[{section}]")
        print("-" * 50)
        for key, value in settings[section].items():
            if key == 'rpc_password' and value:
                value = '********'
            print(f"{key}: {value}")

    # Save example configuration file
    examples_dir = Path("examples")
    examples_dir.mkdir(exist_ok=True)

    with open(examples_dir / "settings.conf.example", "w") as f:
        f.write(EXAMPLE_SETTINGS)

EXAMPLE_SETTINGS = """[DEFAULT]
# Storage backend: postgres or memory
storage = postgres
db_url = postgresql://root@localhost:26257/defaultdb?sslmode=disable
# Identity the asset registry and currency ledger know the market by
market_address = 0xMarket
# Identity seeded into every role on first deployment
deployer = 0xOwner
jwt_secret = change-me
token_expiry_days = 30

[fees]
percentage = 5
min_percentage = 0
max_percentage = 100
flat_service_fee = 1200000000000000
receiver_a = 0xFeeReceiverA
receiver_b = 0xFeeReceiverB
receiver_a_share = 50

[ledgers]
asset_registry_url = http://127.0.0.1:8545
currency_ledger_url = http://127.0.0.1:8546
rpc_user =
rpc_password =
rpc_timeout = 10
"""

if __name__ == "__main__":
    main()
