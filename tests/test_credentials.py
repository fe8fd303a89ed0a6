"""
Tests for credential verification: direct requests, address derivation and
Web3Auth idTokens.
"""

import httpx
import pytest
import respx
from cryptography.hazmat.primitives.asymmetric import ec
from eth_keys import keys

from app.core.errors import InvalidCredentialError
from app.core.jwks import RemoteKeySet
from app.services.credentials import (
    CredentialVerifier,
    Web3AuthVerifier,
    derive_address,
    normalize_address,
    normalize_email,
    verify_direct,
)

# secp256k1 private key 1, a well-known test vector
PRIVATE_KEY_ONE = keys.PrivateKey(b"\x00" * 31 + b"\x01")
ADDRESS_ONE = "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"


# --- Direct requests ---


def test_wallet_request_yields_wallet_identity():
    identity = verify_direct("metamask", address="0xABC", username="alice")

    assert identity.kind == "wallet"
    assert identity.address == "0xABC"
    assert identity.login_method == "metamask"
    assert identity.username == "alice"


def test_email_request_yields_email_identity():
    identity = verify_direct("email", email=" A@B.com ")

    assert identity.is_email
    assert identity.email == "a@b.com"
    assert identity.address is None


def test_email_method_needs_email():
    with pytest.raises(InvalidCredentialError):
        verify_direct("email", address="0xABC")


def test_request_needs_address_or_email():
    with pytest.raises(InvalidCredentialError):
        verify_direct("metamask")


def test_social_request_without_wallet_is_verified_by_email():
    identity = verify_direct("google", email="g@example.com")
    assert identity.is_email
    assert identity.login_method == "google"


def test_normalizers():
    lower = ADDRESS_ONE.lower()
    assert normalize_address(lower) == ADDRESS_ONE
    assert normalize_address("  0xABC ") == "0xABC"
    assert normalize_address("") is None
    assert normalize_email(" Foo@Example.COM") == "foo@example.com"
    assert normalize_email(None) is None


# --- Address derivation ---


def test_derive_address_from_compressed_key():
    compressed = PRIVATE_KEY_ONE.public_key.to_compressed_bytes().hex()
    assert derive_address(compressed) == ADDRESS_ONE
    assert derive_address("0x" + compressed) == ADDRESS_ONE


def test_derive_address_from_uncompressed_key():
    raw = PRIVATE_KEY_ONE.public_key.to_bytes()
    assert derive_address(raw.hex()) == ADDRESS_ONE
    assert derive_address("04" + raw.hex()) == ADDRESS_ONE


def test_derive_address_rejects_bad_keys():
    with pytest.raises(ValueError):
        derive_address("abcd")
    with pytest.raises(ValueError):
        derive_address("zz" * 33)


# --- Web3Auth idTokens ---


@pytest.fixture
def verifier(settings):
    key_set = RemoteKeySet(settings.WEB3AUTH_JWKS_URL, cache_seconds=3600)
    return CredentialVerifier(Web3AuthVerifier(key_set))


def social_wallets():
    return [
        {
            "public_key": PRIVATE_KEY_ONE.public_key.to_compressed_bytes().hex(),
            "type": "web3auth_app_key",
            "curve": "secp256k1",
        },
        {"public_key": "02" + "11" * 32, "type": "web3auth_threshold_key", "curve": "ed25519"},
    ]


@pytest.mark.asyncio
async def test_social_id_token(verifier, settings, jwks, make_id_token):
    token = make_id_token(
        {
            "email": "Social@Example.com",
            "typeOfLogin": "google",
            "verifier": "web3auth-google",
            "wallets": social_wallets(),
        }
    )

    with respx.mock:
        respx.get(settings.WEB3AUTH_JWKS_URL).mock(
            return_value=httpx.Response(200, json=jwks)
        )
        identity = await verifier.verify("google", id_token=token, username="social")

    assert identity.kind == "wallet"
    assert identity.address == ADDRESS_ONE
    assert identity.email == "social@example.com"
    assert identity.login_method == "google"
    assert identity.username == "social"


@pytest.mark.asyncio
async def test_social_id_token_falls_back_to_verifier(verifier, settings, jwks, make_id_token):
    token = make_id_token({"verifier": "custom-verifier", "wallets": social_wallets()})

    with respx.mock:
        respx.get(settings.WEB3AUTH_JWKS_URL).mock(
            return_value=httpx.Response(200, json=jwks)
        )
        identity = await verifier.verify("twitter", id_token=token)

    assert identity.login_method == "custom-verifier"


@pytest.mark.asyncio
async def test_wallet_id_token_uses_first_wallet(verifier, settings, jwks, make_id_token):
    token = make_id_token(
        {
            "wallets": [
                {"type": "ethereum"},
                {"address": ADDRESS_ONE.lower(), "type": "ethereum"},
                {"address": "0x" + "22" * 20, "type": "ethereum"},
            ]
        }
    )

    with respx.mock:
        respx.get(settings.WEB3AUTH_JWKS_URL).mock(
            return_value=httpx.Response(200, json=jwks)
        )
        identity = await verifier.verify("metamask", id_token=token)

    assert identity.address == ADDRESS_ONE
    assert identity.login_method == "metamask"


@pytest.mark.asyncio
async def test_id_token_without_usable_key(verifier, settings, jwks, make_id_token):
    token = make_id_token({"wallets": [{"type": "web3auth_threshold_key", "curve": "ed25519"}]})

    with respx.mock:
        respx.get(settings.WEB3AUTH_JWKS_URL).mock(
            return_value=httpx.Response(200, json=jwks)
        )
        with pytest.raises(InvalidCredentialError):
            await verifier.verify("google", id_token=token)
        with pytest.raises(InvalidCredentialError):
            await verifier.verify("metamask", id_token=token)


@pytest.mark.asyncio
async def test_id_token_with_non_string_wallet_values(verifier, settings, jwks, make_id_token):
    social = make_id_token(
        {"wallets": [{"type": "web3auth_app_key", "curve": "secp256k1", "public_key": 42}]}
    )
    wallet = make_id_token({"wallets": [{"address": ["0xABC"]}]})

    with respx.mock:
        respx.get(settings.WEB3AUTH_JWKS_URL).mock(
            return_value=httpx.Response(200, json=jwks)
        )
        with pytest.raises(InvalidCredentialError):
            await verifier.verify("google", id_token=social)
        with pytest.raises(InvalidCredentialError):
            await verifier.verify("metamask", id_token=wallet)


@pytest.mark.asyncio
async def test_id_token_signed_by_foreign_key(verifier, settings, jwks, make_id_token):
    foreign_key = ec.generate_private_key(ec.SECP256R1())
    token = make_id_token({"wallets": social_wallets()}, key=foreign_key)

    with respx.mock:
        respx.get(settings.WEB3AUTH_JWKS_URL).mock(
            return_value=httpx.Response(200, json=jwks)
        )
        with pytest.raises(InvalidCredentialError):
            await verifier.verify("google", id_token=token)


@pytest.mark.asyncio
async def test_id_token_with_other_algorithm_is_rejected(verifier, settings, jwks, make_id_token):
    token = make_id_token(
        {"wallets": social_wallets()},
        key="a-shared-secret-that-is-long-enough-for-hs256",
        algorithm="HS256",
    )

    with respx.mock:
        respx.get(settings.WEB3AUTH_JWKS_URL).mock(
            return_value=httpx.Response(200, json=jwks)
        )
        with pytest.raises(InvalidCredentialError):
            await verifier.verify("google", id_token=token)


@pytest.mark.asyncio
async def test_unreachable_key_set_is_an_invalid_credential(verifier, settings, make_id_token):
    token = make_id_token({"wallets": social_wallets()})

    with respx.mock:
        respx.get(settings.WEB3AUTH_JWKS_URL).mock(
            side_effect=httpx.ConnectError("connection refused")
        )
        with pytest.raises(InvalidCredentialError):
            await verifier.verify("google", id_token=token)


@pytest.mark.asyncio
async def test_audience_is_checked_when_configured(settings, jwks, make_id_token):
    key_set = RemoteKeySet(settings.WEB3AUTH_JWKS_URL)
    verifier = Web3AuthVerifier(key_set, audience="my-client-id")
    wrong = make_id_token({"aud": "someone-else", "wallets": social_wallets()})
    right = make_id_token({"aud": "my-client-id", "wallets": social_wallets()})

    with respx.mock:
        respx.get(settings.WEB3AUTH_JWKS_URL).mock(
            return_value=httpx.Response(200, json=jwks)
        )
        with pytest.raises(InvalidCredentialError):
            await verifier.verify(wrong, "google")
        identity = await verifier.verify(right, "google")

    assert identity.address == ADDRESS_ONE
    await key_set.aclose()


@pytest.mark.asyncio
async def test_delegated_login_needs_configuration():
    with pytest.raises(InvalidCredentialError):
        await CredentialVerifier().verify("google", id_token="anything")
