import hashlib
import hmac


def compute_signature(token: str, timestamp: str, nonce: str, encrypt: str) -> str:
    """WeCom msg_signature: SHA-1 hex over the four values sorted and joined."""
    raw = "".join(sorted([token, timestamp, nonce, encrypt]))
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def verify_signature(token: str, timestamp: str, nonce: str, encrypt: str, signature: str) -> bool:
    if not signature:
        return False
    expected = compute_signature(token, timestamp, nonce, encrypt)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))
