"""wapi cache - persistent local state for the DDNS client.

Holds the last-known public IPv4/IPv6 addresses and the API credentials of
every configured DNS provider. The cache is a single JSON file:

    {
      "METADATA": {"warning": ..., "name": ..., "version": ...,
                   "description": ..., "homepage": ..., "timestamp": ...},
      "DATA": {"ipv4_address": ..., "ipv6_address": ...,
               "dns_providers": [{"id": ..., "api_key": ..., "secret_api_key": ...}]}
    }

Every mutation goes through normalize(), which rewrites the metadata, resets
invalid addresses and keeps at most one credential per supported provider.
"""

from __future__ import annotations

import ipaddress
import json
import logging
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Union

from wapi import __version__
from wapi.errors import IOFailure, PathResolutionFailed, SerializationFailure

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

CACHE_DIR_NAME = "wapi"
CACHE_FILE_NAME = "cache.json"

DEFAULT_IPV4 = "0.0.0.0"
DEFAULT_IPV6 = "0:0:0:0:0:0:0:0"

METADATA_WARNING = (
    "THIS FILE IS AUTO-GENERATED. DO NOT EDIT MANUALLY. IF THE FILE IS TAMPERED WITH, "
    "IT WILL BE OVERWRITTEN WITH DEFAULT DATA, AND ALL PREVIOUS DATA WILL BE LOST."
)
METADATA_NAME = "wapi-cache"
METADATA_DESCRIPTION = "The cache file for the Wapi client."
METADATA_HOMEPAGE = "https://github.com/AmonRayfa/wapi"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# =============================================================================
# Enums
# =============================================================================


class Provider(Enum):
    """DNS providers and domain registrars the client can update."""

    ALIBABACLOUD = "alibabacloud"
    BLUEHOST = "bluehost"
    CLOUDFLARE = "cloudflare"
    DNSPOD = "dnspod"
    DREAMHOST = "dreamhost"
    DYNADOT = "dynadot"
    ENOM = "enom"
    EPIK = "epik"
    GANDI = "gandi"
    GODADDY = "godaddy"
    HOVER = "hover"
    IONOS = "ionos"
    NAMECHEAP = "namecheap"
    NAMESILO = "namesilo"
    OPENSRS = "opensrs"
    OVH = "ovh"
    PORKBUN = "porkbun"
    RESELLERCLUB = "resellerclub"


SUPPORTED_PROVIDERS: FrozenSet[str] = frozenset(p.value for p in Provider)

# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class Metadata:
    """Informational block, rewritten on every normalization pass."""

    warning: str = ""
    name: str = ""
    version: str = ""
    description: str = ""
    homepage: str = ""
    timestamp: str = ""


@dataclass
class NetworkAddresses:
    """Last-known public addresses."""

    ipv4: str = ""
    ipv6: str = ""


@dataclass(frozen=True)
class Credential:
    """API key pair for one DNS provider."""

    provider_id: str
    api_key: str
    secret_api_key: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.provider_id,
            "api_key": self.api_key,
            "secret_api_key": self.secret_api_key,
        }


@dataclass
class Record:
    """The complete cached state."""

    metadata: Metadata = field(default_factory=Metadata)
    network_addresses: NetworkAddresses = field(default_factory=NetworkAddresses)
    provider_credentials: List[Credential] = field(default_factory=list)

    @classmethod
    def new(cls) -> Record:
        """Create an empty record in normalized form."""
        return normalize(cls())

    def credential_for(self, provider_id: str) -> Optional[Credential]:
        """Return the stored credential for a provider, if any."""
        for credential in reversed(self.provider_credentials):
            if credential.provider_id == provider_id:
                return credential
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "METADATA": asdict(self.metadata),
            "DATA": {
                "ipv4_address": self.network_addresses.ipv4,
                "ipv6_address": self.network_addresses.ipv6,
                "dns_providers": [c.to_dict() for c in self.provider_credentials],
            },
        }

    @classmethod
    def from_dict(cls, data: Any) -> Record:
        """Build a record from its persisted form.

        Every field is required and must hold a string; unknown keys are
        ignored. The result is not normalized.

        Raises:
            ValueError: If the data does not match the persisted layout.
        """
        root = _require_object(data, "root")
        meta = _require_object(root.get("METADATA"), "METADATA")
        body = _require_object(root.get("DATA"), "DATA")

        metadata = Metadata(
            **{f.name: _require_str(meta, f.name, "METADATA") for f in fields(Metadata)}
        )
        addresses = NetworkAddresses(
            ipv4=_require_str(body, "ipv4_address", "DATA"),
            ipv6=_require_str(body, "ipv6_address", "DATA"),
        )

        providers = body.get("dns_providers")
        if not isinstance(providers, list):
            raise ValueError("DATA.dns_providers must be a list")

        credentials = []
        for index, entry in enumerate(providers):
            where = f"DATA.dns_providers[{index}]"
            entry = _require_object(entry, where)
            credentials.append(
                Credential(
                    provider_id=_require_str(entry, "id", where),
                    api_key=_require_str(entry, "api_key", where),
                    secret_api_key=_require_str(entry, "secret_api_key", where),
                )
            )

        return cls(metadata=metadata, network_addresses=addresses, provider_credentials=credentials)


def _require_object(value: Any, where: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"{where} must be an object")
    return value


def _require_str(obj: Dict[str, Any], key: str, where: str) -> str:
    value = obj.get(key)
    if not isinstance(value, str):
        raise ValueError(f"{where}.{key} must be a string")
    return value


# =============================================================================
# Normalization
# =============================================================================


def _timestamp() -> str:
    now = datetime.now()
    return f"{now.strftime(TIMESTAMP_FORMAT)}.{now.microsecond // 1000:03d}"


def _is_ipv4(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return True


def _is_ipv6(value: Any) -> bool:
    # Scoped addresses ("fe80::1%eth0") are interface-local, not public addresses.
    if not isinstance(value, str) or "%" in value:
        return False
    try:
        ipaddress.IPv6Address(value)
    except ValueError:
        return False
    return True


def _dedupe_credentials(
    credentials: List[Credential], providers: FrozenSet[str]
) -> List[Credential]:
    """Keep the last credential per supported provider, in original order."""
    last_index: Dict[str, int] = {}
    for index, credential in enumerate(credentials):
        if credential.provider_id in providers:
            last_index[credential.provider_id] = index

    kept = [c for i, c in enumerate(credentials) if last_index.get(c.provider_id) == i]

    dropped = len(credentials) - len(kept)
    if dropped:
        logger.debug(f"Dropped {dropped} duplicate or unsupported provider credential(s)")
    return kept


def normalize(record: Record, providers: FrozenSet[str] = SUPPORTED_PROVIDERS) -> Record:
    """Bring a record into canonical form, in place.

    - Metadata is overwritten and time-stamped on every call.
    - Invalid addresses are replaced with 0.0.0.0 / 0:0:0:0:0:0:0:0.
    - Credentials for unsupported providers are dropped, and only the most
      recently appended credential per provider is kept.

    Returns:
        The same record, for chaining.
    """
    record.metadata = Metadata(
        warning=METADATA_WARNING,
        name=METADATA_NAME,
        version=__version__,
        description=METADATA_DESCRIPTION,
        homepage=METADATA_HOMEPAGE,
        timestamp=_timestamp(),
    )

    addresses = record.network_addresses
    if not _is_ipv4(addresses.ipv4):
        if addresses.ipv4:
            logger.debug(f"Resetting invalid IPv4 address {addresses.ipv4!r}")
        addresses.ipv4 = DEFAULT_IPV4
    if not _is_ipv6(addresses.ipv6):
        if addresses.ipv6:
            logger.debug(f"Resetting invalid IPv6 address {addresses.ipv6!r}")
        addresses.ipv6 = DEFAULT_IPV6

    record.provider_credentials = _dedupe_credentials(record.provider_credentials, providers)
    return record


# =============================================================================
# Cache Store
# =============================================================================


def _home_dir() -> Path:
    try:
        home = Path.home()
    except (RuntimeError, KeyError) as e:
        raise PathResolutionFailed("resolve_path", f"Cannot determine home directory: {e}") from e
    if str(home).startswith("~"):
        raise PathResolutionFailed("resolve_path", "Cannot determine home directory")
    return home


class CacheStore:
    """Reads and writes the cache file.

    Args:
        base_dir: Directory holding cache.json. Defaults to ~/wapi, resolved
            on every access so the store can be created before HOME is known.
    """

    def __init__(self, base_dir: Optional[Union[str, Path]] = None):
        self.base_dir = Path(base_dir) if base_dir is not None else None

    def resolve_path(self) -> Path:
        base_dir = self.base_dir if self.base_dir is not None else _home_dir() / CACHE_DIR_NAME
        return base_dir / CACHE_FILE_NAME

    def bootstrap(self) -> Path:
        """Ensure the cache file exists, creating it as an empty object."""
        path = self.resolve_path()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if not path.exists():
                path.write_text("{}", "utf-8")
                logger.info(f"Created cache file {path}")
        except OSError as e:
            raise IOFailure("bootstrap", f"{path}: {e}") from e
        return path

    def load(self) -> Record:
        """Load the cache, falling back to a default record if it is corrupt."""
        path = self.bootstrap()
        try:
            raw = path.read_bytes()
        except OSError as e:
            raise IOFailure("load", f"{path}: {e}") from e

        try:
            data = json.loads(raw.decode("utf-8"))
            if data == {}:
                logger.debug(f"Cache file {path} is empty, using defaults")
                return Record.new()
            record = Record.from_dict(data)
        except (ValueError, RecursionError) as e:
            logger.warning(f"Cache file {path} is invalid, resetting to defaults: {e}")
            return Record.new()

        return normalize(record)

    def save(self, record: Record) -> None:
        path = self.resolve_path()
        try:
            content = json.dumps(record.to_dict(), indent=2, sort_keys=True)
        except (TypeError, ValueError) as e:
            raise SerializationFailure("save", str(e)) from e

        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(content, "utf-8")
            tmp_path.replace(path)
        except OSError as e:
            if tmp_path.exists():
                tmp_path.unlink()
            raise IOFailure("save", f"{path}: {e}") from e
        logger.debug(f"Saved cache file {path}")

    def add_credential(
        self, record: Record, provider_id: str, api_key: str, secret_api_key: str
    ) -> Record:
        """Append a credential; a later one for the same provider replaces it."""
        normalize(record)
        record.provider_credentials.append(
            Credential(provider_id=provider_id, api_key=api_key, secret_api_key=secret_api_key)
        )
        normalize(record)
        if record.credential_for(provider_id) is None:
            logger.warning(f"Ignoring credential for unsupported provider '{provider_id}'")
        return record

    def remove_credential(self, record: Record, provider_id: str) -> Record:
        normalize(record)
        record.provider_credentials = [
            c for c in record.provider_credentials if c.provider_id != provider_id
        ]
        return normalize(record)

    def set_addresses(
        self, record: Record, ipv4: Optional[str] = None, ipv6: Optional[str] = None
    ) -> Record:
        """Store newly discovered public addresses. None leaves a field as is."""
        normalize(record)
        if ipv4 is not None:
            record.network_addresses.ipv4 = ipv4
        if ipv6 is not None:
            record.network_addresses.ipv6 = ipv6
        return normalize(record)
