"""
Ethereum Wallet Authentication Utilities

This module handles the wallet side of the challenge/verify login.

Authentication Flow:
1. Backend generates a random nonce -> generate_nonce()
2. Backend embeds nonce and address in a canonical message -> build_challenge_message()
3. Frontend signs the message with personal_sign (EIP-191)
4. Frontend sends: walletAddress, signature
5. Backend verifies: verify_signature()
   - Hashes keccak256("\\x19Ethereum Signed Message:\\n" + len(message) + message)
   - Recovers the secp256k1 public key from the 65-byte (r, s, v) signature
   - Derives the address (last 20 bytes of keccak256(pubkey)) and compares it

Hashing and recovery are done by eth-account (encode_defunct + recover_message).
"""

import binascii
import re
import secrets
from datetime import datetime, timezone

from eth_account import Account
from eth_account.messages import encode_defunct

from dapp_auth.core.errors import AddressMismatchError, InvalidSignatureError, ValidationError

NONCE_NUM_BYTES = 16  # 16 bytes = 32 hex characters
SIGNATURE_NUM_BYTES = 65

_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def generate_nonce(num_bytes: int = NONCE_NUM_BYTES) -> str:
    """
    Generate a cryptographically secure random nonce.

    Returns:
        Hex-encoded random string, 2 characters per byte
    """
    if num_bytes <= 0:
        num_bytes = NONCE_NUM_BYTES
    return secrets.token_hex(num_bytes)


def normalize_address(address: str) -> str:
    """
    Canonical wallet address form: `0x` followed by 40 lowercase hex digits.

    Raises:
        ValidationError: if the value is not a 20-byte hex address
    """
    if not isinstance(address, str):
        raise ValidationError("walletAddress must be a string")
    candidate = address.strip()
    if not _ADDRESS_PATTERN.match(candidate):
        raise ValidationError("walletAddress must be a 0x-prefixed 20-byte hex address")
    return candidate.lower()


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2024-01-01T12:00:00.000Z"""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def build_challenge_message(address: str, nonce: str, issued_at: datetime) -> str:
    return (
        "Sign this message to authenticate with our service.\n"
        "\n"
        f"Wallet: {address}\n"
        f"Nonce: {nonce}\n"
        f"Issued: {format_timestamp(issued_at)}"
    )


def _decode_signature(signature: str) -> bytes:
    """Helper: decode a 0x-prefixed (or bare) hex signature to its 65 raw bytes."""
    if not isinstance(signature, str):
        raise InvalidSignatureError()
    value = signature.strip()
    if value[:2].lower() == "0x":
        value = value[2:]
    try:
        raw = binascii.unhexlify(value)
    except (binascii.Error, ValueError):
        raise InvalidSignatureError("Signature must be hex encoded")
    if len(raw) != SIGNATURE_NUM_BYTES:
        raise InvalidSignatureError(f"Signature must be {SIGNATURE_NUM_BYTES} bytes")
    return raw


def recover_address(message: str, signature: str) -> str:
    """
    Recover the lowercase signer address of an EIP-191 personal message.

    Raises:
        InvalidSignatureError: if the signature is malformed or unrecoverable
    """
    raw = _decode_signature(signature)
    try:
        recovered = Account.recover_message(encode_defunct(text=message), signature=raw)
    except Exception:
        raise InvalidSignatureError("Signature could not be recovered")
    return recovered.lower()


def verify_signature(address: str, message: str, signature: str) -> str:
    """
    Verify that `signature` over `message` was produced by `address`.

    Args:
        address: wallet address claimed by the client
        message: the exact challenge message that was signed
        signature: 65-byte r||s||v signature, hex encoded

    Returns:
        The normalized address

    Raises:
        InvalidSignatureError: malformed signature
        AddressMismatchError: the signature recovers to another address
    """
    expected = normalize_address(address)
    recovered = recover_address(message, signature)
    if recovered != expected:
        raise AddressMismatchError()
    return expected
