"""Settings configuration loader module.

This module handles loading and parsing of the main settings.conf file which contains
the market deployment settings: storage backend, market identity, fee policy and the
endpoints of the two external ledgers.

The settings file uses INI format with a [DEFAULT] section plus [fees] and [ledgers].

Required settings:
    market_address: Identity the asset registry and currency ledger know the market by
    deployer: Identity seeded into every role on first deployment
    fees.receiver_a / fees.receiver_b: Fee receiver identities

Example settings.conf:
    [DEFAULT]
    storage = postgres
    db_url = postgresql://root@localhost:26257/defaultdb?sslmode=disable
    market_address = 0xMarket
    deployer = 0xOwner
    jwt_secret = change-me

    [fees]
    percentage = 5
    flat_service_fee = 1200000000000000
    receiver_a = 0xFeeA
    receiver_b = 0xFeeB

    [ledgers]
    asset_registry_url = http://127.0.0.1:8545
    currency_ledger_url = http://127.0.0.1:8546

Raises:
    SettingsError: If the settings file is missing, invalid, or missing required settings
"""
from configparser import ConfigParser
from pathlib import Path
from typing import Dict, Any, List

class ConfigValidationError:
    """Helper class to format configuration validation errors"""
    def __init__(self):
        self.missing: List[str] = []
        self.invalid: List[str] = []
        self.missing_sections: List[str] = []

    def has_errors(self) -> bool:
        """Check if any errors exist"""
        return bool(self.missing or self.invalid or self.missing_sections)

    def format_message(self) -> str:
        """Format error message in a clean, readable way"""
        messages = []

        if self.missing_sections:
            messages.append("Missing required sections:")
            messages.extend(f"  - {item}" for item in self.missing_sections)

        if self.missing:
            if messages:
                messages.append("")
            messages.append("Missing required settings:")
            messages.extend(f"  - {item}" for item in self.missing)

        if self.invalid:
            if messages:
                messages.append("")
            messages.append("Invalid values:")
            messages.extend(f"  - {item}" for item in self.invalid)

        return "\n".join(messages)

class SettingsError(Exception):
    """Raised when there are issues loading or parsing the settings configuration."""
    pass

# Default settings
DEFAULTS = {
    'storage': 'postgres',
    'db_url': 'postgresql://root@localhost:26257/defaultdb?sslmode=disable',
    'jwt_secret': '',
    'token_expiry_days': '30',
}

FEE_DEFAULTS = {
    'percentage': '5',
    'min_percentage': '0',
    'max_percentage': '100',
    'flat_service_fee': '0',
    'receiver_a_share': '50',
}

LEDGER_DEFAULTS = {
    'asset_registry_url': 'http://127.0.0.1:8545',
    'currency_ledger_url': 'http://127.0.0.1:8546',
    'rpc_user': '',
    'rpc_password': '',
    'rpc_timeout': '10',
}

STORAGE_BACKENDS = ('postgres', 'memory')

FEE_INT_SETTINGS = ('percentage', 'min_percentage', 'max_percentage',
                    'flat_service_fee', 'receiver_a_share')

def load_settings_conf(settings_path: str = ".") -> Dict[str, Any]:
    """Load and parse settings.conf file with strict validation

    Args:
        settings_path: Directory containing settings.conf

    Returns:
        Dictionary of [DEFAULT] settings with the [fees] and [ledgers]
        sections nested under 'fees' and 'ledgers'

    Raises:
        SettingsError: If file not found, parsing fails, or validation fails
    """
    config_path = Path(settings_path) / 'settings.conf'

    if not config_path.exists():
        raise SettingsError(
            f"Settings file not found at: {config_path}\n"
            "Please create settings.conf based on examples/settings.conf.example"
        )

    try:
        parser = ConfigParser()
        parser.read(config_path)
        return parse_settings(parser)

    except Exception as e:
        if isinstance(e, SettingsError):
            raise
        raise SettingsError(f"Error parsing settings.conf: {str(e)}")

def parse_settings(parser: ConfigParser) -> Dict[str, Any]:
    """Validate a parsed settings file and convert it to typed settings.

    Args:
        parser: ConfigParser holding the raw settings

    Returns:
        Validated settings dictionary

    Raises:
        SettingsError: If validation fails
    """
    errors = ConfigValidationError()

    for section in ('fees', 'ledgers'):
        if not parser.has_section(section):
            errors.missing_sections.append(f'[{section}]')
    if errors.has_errors():
        raise SettingsError(
            "Settings Configuration Validation Failed\n\n" +
            errors.format_message()
        )

    # Section values inherit [DEFAULT] in configparser, so read DEFAULT
    # through parser.defaults() and the sections with their own keys only
    settings: Dict[str, Any] = {**DEFAULTS, **dict(parser.defaults())}
    fees = {**FEE_DEFAULTS, **_section_only(parser, 'fees')}
    ledgers = {**LEDGER_DEFAULTS, **_section_only(parser, 'ledgers')}

    for key in ('market_address', 'deployer'):
        if not settings.get(key):
            errors.missing.append(key)
    for key in ('receiver_a', 'receiver_b'):
        if not fees.get(key):
            errors.missing.append(f'fees.{key}')

    if settings['storage'] not in STORAGE_BACKENDS:
        errors.invalid.append(
            f"storage: {settings['storage']} (expected one of {', '.join(STORAGE_BACKENDS)})"
        )

    for key in FEE_INT_SETTINGS:
        try:
            fees[key] = int(fees[key])
        except ValueError:
            errors.invalid.append(f"fees.{key}: {fees[key]} is not an integer")

    for key in ('rpc_timeout',):
        try:
            ledgers[key] = float(ledgers[key])
        except ValueError:
            errors.invalid.append(f"ledgers.{key}: {ledgers[key]} is not a number")

    try:
        settings['token_expiry_days'] = int(settings['token_expiry_days'])
    except ValueError:
        errors.invalid.append(f"token_expiry_days: {settings['token_expiry_days']} is not an integer")

    if not errors.invalid:
        if not 0 <= fees['receiver_a_share'] <= 100:
            errors.invalid.append("fees.receiver_a_share: must be between 0 and 100")
        if fees['flat_service_fee'] < 0:
            errors.invalid.append("fees.flat_service_fee: must not be negative")

    if errors.has_errors():
        raise SettingsError(
            "Settings Configuration Validation Failed\n\n" +
            errors.format_message()
        )

    settings['fees'] = fees
    settings['ledgers'] = ledgers
    return settings

def _section_only(parser: ConfigParser, section: str) -> Dict[str, str]:
    defaults = parser.defaults()
    return {
        key: value
        for key, value in parser.items(section)
        if key not in defaults or defaults[key] != value
    }
