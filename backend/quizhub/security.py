# Password hashing, salt and session token utilities.
import hashlib
import hmac
import secrets

# Hash a password with a salt using SHA-256.
def hash_password(password: str, salt: str) -> str:
    return hashlib.sha256(f"{salt}{password}".encode("utf-8")).hexdigest()

# Generate a random salt string for password hashing.
def generate_salt() -> str:
    return secrets.token_hex(16)

# Compare a candidate password against a stored hash in constant time.
def verify_password(password: str, salt: str, expected_hash: str) -> bool:
    return hmac.compare_digest(hash_password(password, salt), expected_hash)

# Generate an opaque bearer token for a signed-in session.
def generate_session_token() -> str:
    return secrets.token_urlsafe(32)
