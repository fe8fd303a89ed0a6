"""
Credential verification: turn a signin request into a normalized identity.

Two kinds of request are accepted:

* direct requests carrying a ``loginMethod`` plus an ``address`` and/or an
  ``email``;
* delegated requests carrying a Web3Auth ``idToken``. The token is verified
  against the issuer's key set (ES256 only) and the wallet address is taken
  from the wallets embedded in its payload.

Wallet logins (``metamask``, ``wallet_connect``) use the first embedded
wallet address as-is. Social logins use the application-scoped secp256k1
key and derive the address from its public key.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import jwt
from eth_keys import keys
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_utils import is_hex_address, to_checksum_address

from ..core.errors import InvalidCredentialError
from ..core.jwks import KeySetUnavailableError, RemoteKeySet

logger = logging.getLogger(__name__)

WALLET_LOGIN_METHODS = frozenset({"metamask", "wallet_connect"})
EMAIL_LOGIN_METHOD = "email"
APP_KEY_CURVE = "secp256k1"
APP_KEY_TYPE = "web3auth_app_key"
PINNED_ALGORITHMS = ["ES256"]


@dataclass(frozen=True)
class Identity:
    """Normalized result of a successful credential check."""

    kind: str  # "wallet" or "email"
    login_method: str
    address: Optional[str] = None
    email: Optional[str] = None
    username: Optional[str] = None

    @property
    def is_email(self) -> bool:
        return self.kind == "email"


def normalize_address(address: Optional[str]) -> Optional[str]:
    """Checksum Ethereum addresses; other chain formats are only trimmed."""
    if not address:
        return None
    address = address.strip()
    if is_hex_address(address):
        return to_checksum_address(address)
    return address or None


def normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    return email.strip().lower() or None


def derive_address(public_key_hex: str) -> str:
    """Derive the EIP-55 address of a secp256k1 public key.

    Accepts compressed (33 bytes), uncompressed (65 bytes, ``04`` prefix) and
    raw (64 bytes) encodings, with or without ``0x``.
    """
    hex_value = public_key_hex[2:] if public_key_hex.startswith("0x") else public_key_hex
    raw = bytes.fromhex(hex_value)

    try:
        if len(raw) == 33:
            public_key = keys.PublicKey.from_compressed_bytes(raw)
        elif len(raw) == 65 and raw[0] == 4:
            public_key = keys.PublicKey(raw[1:])
        elif len(raw) == 64:
            public_key = keys.PublicKey(raw)
        else:
            raise ValueError(f"Unsupported public key length: {len(raw)} bytes")
    except KeyValidationError as exc:
        raise ValueError(f"Invalid secp256k1 public key: {exc}") from exc

    return public_key.to_checksum_address()


def app_key_address(wallets: Iterable[Dict[str, Any]]) -> str:
    """Address of the application-scoped secp256k1 key of a social login."""
    for wallet in wallets:
        if not isinstance(wallet, dict):
            continue
        if wallet.get("curve") == APP_KEY_CURVE and wallet.get("type") == APP_KEY_TYPE:
            public_key = wallet.get("public_key")
            if isinstance(public_key, str) and public_key:
                return derive_address(public_key)
    raise ValueError("No secp256k1 key found in idToken")


def first_wallet_address(wallets: Iterable[Dict[str, Any]]) -> str:
    for wallet in wallets:
        address = wallet.get("address") if isinstance(wallet, dict) else None
        if isinstance(address, str) and address:
            return address
    raise ValueError("No wallet address found in idToken")


def verify_direct(
    login_method: str,
    address: Optional[str] = None,
    email: Optional[str] = None,
    username: Optional[str] = None,
) -> Identity:
    """Validate a request that names its address or email directly."""
    address = normalize_address(address)
    email = normalize_email(email)

    if not address and not email:
        raise InvalidCredentialError("Either address or email must be provided")

    if login_method == EMAIL_LOGIN_METHOD:
        if not email:
            raise InvalidCredentialError(
                "Email is required for email-based login methods"
            )
        return Identity("email", login_method, email=email, username=username)

    if address:
        return Identity(
            "wallet", login_method, address=address, email=email, username=username
        )

    # social method without a wallet: the email still has to be verified
    return Identity("email", login_method, email=email, username=username)


class Web3AuthVerifier:
    """Verifies Web3Auth id tokens against the issuer's remote key set."""

    def __init__(self, key_set: RemoteKeySet, audience: Optional[str] = None):
        self.key_set = key_set
        self.audience = audience

    async def decode(self, id_token: str) -> Dict[str, Any]:
        try:
            signing_key = await self.key_set.get_signing_key(id_token)
            return jwt.decode(
                id_token,
                signing_key.key,
                algorithms=PINNED_ALGORITHMS,
                audience=self.audience,
                options={"verify_aud": self.audience is not None},
            )
        except KeySetUnavailableError as exc:
            logger.warning(f"idToken rejected, key set problem: {exc}")
            raise InvalidCredentialError("Invalid token") from exc
        except jwt.PyJWTError as exc:
            logger.warning(f"idToken rejected: {exc}")
            raise InvalidCredentialError("Invalid token") from exc

    async def verify(
        self,
        id_token: str,
        login_method: str,
        username: Optional[str] = None,
    ) -> Identity:
        payload = await self.decode(id_token)
        wallets = payload.get("wallets") or []
        if not isinstance(wallets, list):
            raise InvalidCredentialError("Malformed wallets claim in idToken")

        social = login_method not in WALLET_LOGIN_METHODS
        try:
            if social:
                address = app_key_address(wallets)
            else:
                address = first_wallet_address(wallets)
        except ValueError as exc:
            raise InvalidCredentialError(str(exc)) from exc

        if social:
            login_method = payload.get("typeOfLogin") or payload.get("verifier") or login_method

        return Identity(
            "wallet",
            login_method,
            address=normalize_address(address),
            email=normalize_email(payload.get("email")),
            username=username,
        )


class CredentialVerifier:
    """Entry point used by the auth service for both request kinds."""

    def __init__(self, web3auth: Optional[Web3AuthVerifier] = None):
        self.web3auth = web3auth

    async def verify(
        self,
        login_method: str,
        address: Optional[str] = None,
        email: Optional[str] = None,
        id_token: Optional[str] = None,
        username: Optional[str] = None,
    ) -> Identity:
        if id_token:
            if self.web3auth is None:
                raise InvalidCredentialError("Delegated login is not configured")
            return await self.web3auth.verify(id_token, login_method, username)
        return verify_direct(login_method, address, email, username)
