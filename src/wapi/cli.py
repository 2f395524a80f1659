#!/usr/bin/env python3
"""wapi - DDNS client cache management

Command-line front end over the local cache file that stores the last-known
public IP addresses and the DNS provider credentials.

Commands:
    path                                  Print the cache file path
    show                                  Print the cache with API keys masked
    add PROVIDER API_KEY [SECRET_API_KEY] Store credentials for a provider
    remove PROVIDER                       Forget the credentials of a provider
    set-address [--ipv4 IP] [--ipv6 IP]   Store the current public addresses
    import [FILE]                         Add every credential from a YAML file

Supported providers:
    alibabacloud, bluehost, cloudflare, dnspod, dreamhost, dynadot, enom, epik,
    gandi, godaddy, hover, ionos, namecheap, namesilo, opensrs, ovh, porkbun,
    resellerclub

Environment variables:

    WAPI_CACHE_DIR         Directory holding cache.json (default: ~/wapi)
    WAPI_CREDENTIALS_PATH  YAML credentials file used by "import"
                           (default: ~/.config/wapi/credentials.yaml)
                           Example file:
                             providers:
                               - id: "cloudflare"
                                 api_key: "..."
                                 secret_api_key: "..."
                               - id: "porkbun"
                                 api_key: "..."
                                 secret_api_key: "..."
    LOG_LEVEL              DEBUG, INFO, WARNING, ERROR (default: INFO)
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from wapi import __version__
from wapi.cache import SUPPORTED_PROVIDERS, CacheStore, Credential, Record
from wapi.errors import CacheError, ConfigError

# =============================================================================
# Configuration
# =============================================================================

WAPI_CACHE_DIR = os.getenv("WAPI_CACHE_DIR", "").strip()
WAPI_CREDENTIALS_PATH = os.getenv(
    "WAPI_CREDENTIALS_PATH", os.path.join("~", ".config", "wapi", "credentials.yaml")
)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# =============================================================================
# Logging Setup
# =============================================================================

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# =============================================================================
# Credentials File
# =============================================================================


def load_credentials_file(config_path: str) -> List[Credential]:
    """Read provider credentials from a YAML file.

    Args:
        config_path: Path to the YAML file (``~`` is expanded)

    Returns:
        Credentials in file order. Entries without ``id`` or ``api_key`` are
        skipped; ``secret_api_key`` defaults to an empty string.

    Raises:
        ConfigError: If the file is missing, unparsable or has no providers list
    """
    path = Path(config_path).expanduser()
    try:
        with open(path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read credentials file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in credentials file {path}: {e}") from e

    if not isinstance(config, dict) or not isinstance(config.get("providers"), list):
        raise ConfigError(f"Credentials file {path} has no 'providers' list")

    credentials: List[Credential] = []
    for index, item in enumerate(config["providers"]):
        if not isinstance(item, dict):
            logger.warning(f"Skipping providers[{index}] in {path}: not a mapping")
            continue
        provider_id = str(item.get("id") or "").strip().lower()
        api_key = str(item.get("api_key") or "")
        if not provider_id or not api_key:
            logger.warning(f"Skipping providers[{index}] in {path}: 'id' and 'api_key' are required")
            continue
        credentials.append(
            Credential(
                provider_id=provider_id,
                api_key=api_key,
                secret_api_key=str(item.get("secret_api_key") or ""),
            )
        )

    return credentials


# =============================================================================
# Output Helpers
# =============================================================================


def _mask(secret: str) -> str:
    if len(secret) <= 4:
        return "*" * len(secret)
    return secret[:4] + "*" * (len(secret) - 4)


def masked_view(record: Record) -> Dict[str, Any]:
    """Persisted form of a record with every API key masked."""
    data = record.to_dict()
    for provider in data["DATA"]["dns_providers"]:
        provider["api_key"] = _mask(provider["api_key"])
        provider["secret_api_key"] = _mask(provider["secret_api_key"])
    return data


# =============================================================================
# Commands
# =============================================================================


def _cmd_path(store: CacheStore, args: argparse.Namespace) -> int:
    print(store.resolve_path())
    return 0


def _cmd_show(store: CacheStore, args: argparse.Namespace) -> int:
    record = store.load()
    print(json.dumps(masked_view(record), indent=2, sort_keys=True))
    return 0


def _cmd_add(store: CacheStore, args: argparse.Namespace) -> int:
    provider_id = args.provider.strip().lower()
    if provider_id not in SUPPORTED_PROVIDERS:
        logger.error(
            f"Unsupported provider '{args.provider}'. Use one of: {', '.join(sorted(SUPPORTED_PROVIDERS))}"
        )
        return 2

    record = store.load()
    replaced = record.credential_for(provider_id) is not None
    store.add_credential(record, provider_id, args.api_key, args.secret_api_key)
    store.save(record)
    logger.info(f"{'Updated' if replaced else 'Added'} credentials for {provider_id}")
    return 0


def _cmd_remove(store: CacheStore, args: argparse.Namespace) -> int:
    provider_id = args.provider.strip().lower()
    record = store.load()
    if record.credential_for(provider_id) is None:
        logger.info(f"No credentials stored for {provider_id}")
        return 0

    store.remove_credential(record, provider_id)
    store.save(record)
    logger.info(f"Removed credentials for {provider_id}")
    return 0


def _cmd_set_address(store: CacheStore, args: argparse.Namespace) -> int:
    if args.ipv4 is None and args.ipv6 is None:
        logger.error("Nothing to do: pass --ipv4 and/or --ipv6")
        return 2

    record = store.load()
    store.set_addresses(record, ipv4=args.ipv4, ipv6=args.ipv6)
    addresses = record.network_addresses
    if args.ipv4 is not None and addresses.ipv4 != args.ipv4:
        logger.warning(f"Invalid IPv4 address '{args.ipv4}', stored {addresses.ipv4}")
    if args.ipv6 is not None and addresses.ipv6 != args.ipv6:
        logger.warning(f"Invalid IPv6 address '{args.ipv6}', stored {addresses.ipv6}")
    store.save(record)
    logger.info(f"Stored addresses: ipv4={addresses.ipv4} ipv6={addresses.ipv6}")
    return 0


def _cmd_import(store: CacheStore, args: argparse.Namespace) -> int:
    credentials = load_credentials_file(args.file or WAPI_CREDENTIALS_PATH)

    record = store.load()
    for credential in credentials:
        if credential.provider_id not in SUPPORTED_PROVIDERS:
            logger.warning(f"Skipping unsupported provider '{credential.provider_id}'")
            continue
        store.add_credential(
            record, credential.provider_id, credential.api_key, credential.secret_api_key
        )
    store.save(record)

    providers = [c.provider_id for c in record.provider_credentials]
    logger.info(f"Imported credentials; stored providers: {', '.join(providers) or 'none'}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="wapi", description="Manage the wapi DDNS client cache.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--cache-dir",
        default=WAPI_CACHE_DIR or None,
        help="Directory holding cache.json (default: $WAPI_CACHE_DIR or ~/wapi)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("path", help="Print the cache file path").set_defaults(func=_cmd_path)
    sub.add_parser("show", help="Print the cache with API keys masked").set_defaults(
        func=_cmd_show
    )

    add = sub.add_parser("add", help="Store credentials for a provider")
    add.add_argument("provider")
    add.add_argument("api_key")
    add.add_argument("secret_api_key", nargs="?", default="")
    add.set_defaults(func=_cmd_add)

    remove = sub.add_parser("remove", help="Forget the credentials of a provider")
    remove.add_argument("provider")
    remove.set_defaults(func=_cmd_remove)

    set_address = sub.add_parser("set-address", help="Store the current public addresses")
    set_address.add_argument("--ipv4")
    set_address.add_argument("--ipv6")
    set_address.set_defaults(func=_cmd_set_address)

    imp = sub.add_parser("import", help="Add every credential from a YAML file")
    imp.add_argument("file", nargs="?", help="YAML file (default: $WAPI_CREDENTIALS_PATH)")
    imp.set_defaults(func=_cmd_import)

    return parser


# =============================================================================
# Main
# =============================================================================


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    store = CacheStore(args.cache_dir)

    try:
        return args.func(store, args)
    except (CacheError, ConfigError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
